"""Bundle of one reactive table per entity kind."""
from __future__ import annotations

import logging
from typing import Callable, Type

from blockguess.models import ChatMessage, Guess, LogEvent, PrizeConfig, Round
from blockguess.models.base import BaseRecord
from blockguess.store.backends import MemoryTableBackend, RedisTableBackend, TableBackend
from blockguess.store.reactive_table import ReactiveTable

logger = logging.getLogger(__name__)

TABLES: dict[str, Type[BaseRecord]] = {
    "rounds": Round,
    "guesses": Guess,
    "chat_messages": ChatMessage,
    "logs": LogEvent,
    "prize_configs": PrizeConfig,
}


class TableStore:
    """
    Single handle over the game tables.

    The surface is the same whichever backend holds the records. A new store is
    always empty: no round exists until an administrator creates one.
    """

    def __init__(self, backend_factory: Callable[[str, Type[BaseRecord]], TableBackend], backend: str):
        self.backend = backend
        self.rounds: ReactiveTable[Round] = ReactiveTable("rounds", backend_factory("rounds", Round))
        self.guesses: ReactiveTable[Guess] = ReactiveTable("guesses", backend_factory("guesses", Guess))
        self.chat_messages: ReactiveTable[ChatMessage] = ReactiveTable(
            "chat_messages", backend_factory("chat_messages", ChatMessage)
        )
        self.logs: ReactiveTable[LogEvent] = ReactiveTable("logs", backend_factory("logs", LogEvent))
        self.prize_configs: ReactiveTable[PrizeConfig] = ReactiveTable(
            "prize_configs", backend_factory("prize_configs", PrizeConfig)
        )
        logger.info(f"📦 Table store ready ({backend})")

    @classmethod
    def in_memory(cls) -> "TableStore":
        return cls(lambda name, model: MemoryTableBackend(), backend="memory")

    @classmethod
    def redis(cls, redis_client, namespace: str) -> "TableStore":
        return cls(
            lambda name, model: RedisTableBackend(redis_client, namespace, name, model),
            backend="redis",
        )

    def tables(self) -> dict[str, ReactiveTable]:
        return {name: getattr(self, name) for name in TABLES}
