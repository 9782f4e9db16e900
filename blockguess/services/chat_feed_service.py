"""Most-recent-first chat feed fed by the chat table subscription."""
import logging
from bisect import insort
from threading import Lock
from typing import List, Optional

from blockguess.models import ChatMessage
from blockguess.store.reactive_table import ReactiveTable

logger = logging.getLogger(__name__)


def _order_key(message: ChatMessage):
    return message.timestamp, message.id or 0


class ChatFeed:
    """
    Bounded view of a chat channel.

    The chat table itself is append-only; this projection keeps only the newest
    ``limit`` messages by timestamp and presents them newest first. Messages may
    arrive with any timestamp, so each one is placed by ``(timestamp, id)``.
    """

    def __init__(self, table: ReactiveTable[ChatMessage], limit: int = 100, channel: Optional[str] = None):
        self.limit = limit
        self.channel = channel
        # Oldest first; messages() reverses
        self._messages: List[ChatMessage] = []
        self._lock = Lock()

        with self._lock:
            initial = sorted((m for m in table.iterate() if self._accepts(m)), key=_order_key)
            self._messages = initial[-limit:]
            self._subscription = table.subscribe_insert(self._on_insert)

        logger.debug(f"💬 Chat feed ready with {len(self._messages)} messages (limit={limit})")

    def _accepts(self, message: ChatMessage) -> bool:
        return self.channel is None or message.round_id == self.channel

    def _on_insert(self, message: ChatMessage) -> None:
        if not self._accepts(message):
            return
        with self._lock:
            if any(existing.id == message.id for existing in self._messages):
                return
            insort(self._messages, message, key=_order_key)
            if len(self._messages) > self.limit:
                del self._messages[: len(self._messages) - self.limit]

    def messages(self) -> List[ChatMessage]:
        """Newest message first."""
        with self._lock:
            return list(reversed(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def close(self) -> None:
        self._subscription.unsubscribe()
