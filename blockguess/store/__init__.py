"""Reactive table store and its connection layer."""
from blockguess.store.backends import MemoryTableBackend, RedisTableBackend, TableBackend
from blockguess.store.reactive_table import (
    InsertListener,
    ReactiveTable,
    Subscription,
    TableSnapshot,
    UpdateListener,
)
from blockguess.store.table_store import TableStore
from blockguess.store.connection import (
    ConnectionManager,
    InMemoryConnectionManager,
    RedisConnectionManager,
    create_connection_manager,
)

__all__ = [
    "TableBackend",
    "MemoryTableBackend",
    "RedisTableBackend",
    "InsertListener",
    "UpdateListener",
    "ReactiveTable",
    "Subscription",
    "TableSnapshot",
    "TableStore",
    "ConnectionManager",
    "InMemoryConnectionManager",
    "RedisConnectionManager",
    "create_connection_manager",
]
