"""Observable table mapping auto-assigned ids to immutable records."""
from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, Generic, Iterator, Optional, Protocol, TypeVar

from blockguess.models.base import BaseRecord
from blockguess.store.backends import TableBackend
from blockguess.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseRecord)
T_contra = TypeVar("T_contra", bound=BaseRecord, contravariant=True)


class InsertListener(Protocol[T_contra]):
    """Called with the stored record after every insert."""

    def __call__(self, record: T_contra) -> None: ...


class UpdateListener(Protocol[T_contra]):
    """Called with the previous and the new record after every update."""

    def __call__(self, old: T_contra, new: T_contra) -> None: ...


class Subscription:
    """Handle returned by ``subscribe_*``; unsubscribing twice is harmless."""

    def __init__(self, remove: Callable[[], None]):
        self._remove: Optional[Callable[[], None]] = remove

    @property
    def active(self) -> bool:
        return self._remove is not None

    def unsubscribe(self) -> None:
        remove, self._remove = self._remove, None
        if remove is not None:
            remove()

    __call__ = unsubscribe


class TableSnapshot(Generic[T]):
    """
    Point-in-time view of a table.

    Iterating it is lazy and can be repeated; records inserted after the
    snapshot was taken never show up in it.
    """

    def __init__(self, records: tuple[T, ...]):
        self._records = records

    def __iter__(self) -> Iterator[T]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)


class ReactiveTable(Generic[T]):
    """
    Mapping from a monotonically assigned id to a record, with synchronous
    insert/update notification.

    Subscribers run in registration order. A failing subscriber is logged and
    skipped so the remaining subscribers and the caller are unaffected.
    """

    def __init__(self, name: str, backend: TableBackend[T]):
        self.name = name
        self._backend = backend
        self._lock = RLock()
        self._insert_listeners: list[InsertListener[T]] = []
        self._update_listeners: list[UpdateListener[T]] = []

    def insert(self, record: T) -> int:
        """Store ``record`` under a new id and notify insert subscribers."""
        with self._lock:
            record_id = self._backend.next_id()
            stored = record.with_id(record_id)
            self._backend.put(record_id, stored)
            listeners = list(self._insert_listeners)

        logger.debug(f"➕ [{self.name}] inserted {record_id=}")
        for listener in listeners:
            try:
                listener(stored)
            except Exception as e:
                logger.exception(f"❌ [{self.name}] insert subscriber {listener!r} failed: {e}")
        return record_id

    def update(self, record_id: int, record: T) -> None:
        """Replace the record stored under ``record_id`` and notify update subscribers."""
        with self._lock:
            old = self._backend.get(record_id)
            if old is None:
                raise NotFoundError(self.name, record_id)
            new = record.with_id(record_id)
            self._backend.put(record_id, new)
            listeners = list(self._update_listeners)

        logger.debug(f"🔄 [{self.name}] updated {record_id=}")
        for listener in listeners:
            try:
                listener(old, new)
            except Exception as e:
                logger.exception(f"❌ [{self.name}] update subscriber {listener!r} failed: {e}")

    def get(self, record_id: int) -> Optional[T]:
        return self._backend.get(record_id)

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, int) and self._backend.get(record_id) is not None

    def __len__(self) -> int:
        return len(self._backend.values())

    def iterate(self) -> TableSnapshot[T]:
        """Snapshot of current records in insertion order."""
        with self._lock:
            return TableSnapshot(tuple(self._backend.values()))

    def __iter__(self) -> Iterator[T]:
        return iter(self.iterate())

    def subscribe_insert(self, listener: InsertListener[T]) -> Subscription:
        with self._lock:
            self._insert_listeners.append(listener)
        return Subscription(lambda: self._remove(self._insert_listeners, listener))

    def subscribe_update(self, listener: UpdateListener[T]) -> Subscription:
        with self._lock:
            self._update_listeners.append(listener)
        return Subscription(lambda: self._remove(self._update_listeners, listener))

    def _remove(self, listeners: list, listener) -> None:
        with self._lock:
            for index, registered in enumerate(listeners):
                if registered is listener:
                    del listeners[index]
                    return
