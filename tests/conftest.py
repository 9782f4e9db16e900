"""Pytest configuration and fixtures."""
import asyncio
import os
from datetime import datetime, timedelta, UTC
from typing import Dict, List, Optional

import pytest

# Keep tests on the in-memory store and away from the network
os.environ["STORE_BACKEND"] = "memory"
os.environ["LOG_DIR"] = "./test-logs"

from blockguess.config import Settings
from blockguess.services.round_lifecycle_service import RoundLifecycleManager
from blockguess.store.connection import InMemoryConnectionManager


class FakeClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeBlockSource:
    """Block data source answering from dictionaries.

    Every call yields to the event loop once, like a real network request.
    """

    def __init__(self):
        self.hashes: Dict[int, str] = {}
        self.txids: Dict[str, List[str]] = {}
        self.hash_error: Optional[Exception] = None
        self.txid_error: Optional[Exception] = None
        self.hash_calls: List[int] = []
        self.txid_calls: List[str] = []

    def mine(self, height: int, block_hash: str, tx_count: int) -> None:
        self.hashes[height] = block_hash
        self.txids[block_hash] = [f"tx{i}" for i in range(tx_count)]

    async def block_hash_at_height(self, height: int) -> Optional[str]:
        self.hash_calls.append(height)
        await asyncio.sleep(0)
        if self.hash_error is not None:
            raise self.hash_error
        return self.hashes.get(height)

    async def transaction_ids_for_block(self, block_hash: str) -> List[str]:
        self.txid_calls.append(block_hash)
        await asyncio.sleep(0)
        if self.txid_error is not None:
            raise self.txid_error
        return self.txids[block_hash]


class InMemoryRedis:
    """Minimal stand-in for the subset of the redis client the store uses."""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.pings = 0
        self.closed = False

    def ping(self) -> bool:
        self.pings += 1
        return True

    def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def hset(self, key: str, field: str, value: str) -> int:
        bucket = self.hashes.setdefault(key, {})
        is_new = field not in bucket
        bucket[field] = value
        return int(is_new)

    def hget(self, key: str, field: str) -> Optional[str]:
        return self.hashes.get(key, {}).get(field)

    def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self.hashes.get(key, {}))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    """Settings with fast timings for tests."""
    return Settings(
        store_backend="memory",
        connection_max_retries=3,
        connection_retry_base_delay_seconds=0.0,
        resolution_poll_interval_seconds=0.01,
        max_guess_value=10_000,
        chat_history_limit=100,
        admin_fids="250704,1107084",
        log_dir="./test-logs",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def block_source():
    return FakeBlockSource()


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
async def connection(settings):
    """Connected in-memory connection manager."""
    manager = InMemoryConnectionManager(
        max_retries=settings.connection_max_retries,
        retry_base_delay=settings.connection_retry_base_delay_seconds,
    )
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest.fixture
def lifecycle(connection, settings, clock):
    return RoundLifecycleManager(connection, settings, clock=clock)


@pytest.fixture
def store(connection):
    return connection.store
