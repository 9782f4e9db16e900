"""Record storage for reactive tables - Redis or in-memory."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Generic, Optional, Type, TypeVar

from blockguess.models.base import BaseRecord

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseRecord)


class TableBackend(ABC, Generic[T]):
    """Where a table keeps its id counter and records."""

    @abstractmethod
    def next_id(self) -> int:
        """Reserve the next id. Ids are never handed out twice."""

    @abstractmethod
    def get(self, record_id: int) -> Optional[T]:
        ...

    @abstractmethod
    def put(self, record_id: int, record: T) -> None:
        ...

    @abstractmethod
    def values(self) -> list[T]:
        """All records ordered by id (insertion order)."""


class MemoryTableBackend(TableBackend[T]):
    """Process-local storage; lives as long as the owning store."""

    def __init__(self):
        self._rows: dict[int, T] = {}
        self._counter = 0

    def next_id(self) -> int:
        self._counter += 1
        return self._counter

    def get(self, record_id: int) -> Optional[T]:
        return self._rows.get(record_id)

    def put(self, record_id: int, record: T) -> None:
        self._rows[record_id] = record

    def values(self) -> list[T]:
        # dict preserves insertion order and ids are assigned in that order
        return list(self._rows.values())


class RedisTableBackend(TableBackend[T]):
    """
    Storage in a Redis server.

    Ids come from ``INCR`` on ``{namespace}:{table}:seq`` and records are JSON
    values in the hash ``{namespace}:{table}:rows``.
    """

    def __init__(self, redis_client, namespace: str, table: str, model: Type[T]):
        self.redis = redis_client
        self.model = model
        self.seq_key = f"{namespace}:{table}:seq"
        self.rows_key = f"{namespace}:{table}:rows"

    def next_id(self) -> int:
        return int(self.redis.incr(self.seq_key))

    def get(self, record_id: int) -> Optional[T]:
        raw = self.redis.hget(self.rows_key, str(record_id))
        return self.model.model_validate_json(raw) if raw else None

    def put(self, record_id: int, record: T) -> None:
        self.redis.hset(self.rows_key, str(record_id), record.model_dump_json())

    def values(self) -> list[T]:
        rows = self.redis.hgetall(self.rows_key)
        ordered = sorted(rows.items(), key=lambda item: int(item[0]))
        return [self.model.model_validate_json(raw) for _, raw in ordered]
