"""Connection management for the backing table store.

One ``ConnectionManager`` instance owns the link to a store implementation. It
retries the initial handshake a bounded number of times with a linearly growing
delay and exposes connectivity as an observable boolean instead of raising on
every failure.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from blockguess.config import Settings
from blockguess.store.table_store import TableStore
from blockguess.utils.exceptions import ConnectivityError
from blockguess.utils.observable import ObservableValue

logger = logging.getLogger(__name__)


class ConnectionManager(ABC):
    """Base class holding the retry and connectivity bookkeeping."""

    backend_name = "abstract"

    def __init__(
        self,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self.connected: ObservableValue[bool] = ObservableValue(False)
        self.last_error: Optional[str] = None
        self.attempts = 0
        self._store: Optional[TableStore] = None
        self._lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None

    @abstractmethod
    async def _open(self) -> TableStore:
        """Perform one connection attempt. Raise on failure."""

    async def _close(self) -> None:
        """Release backend resources. Default: nothing to release."""

    @property
    def is_connected(self) -> bool:
        return self._store is not None and self.connected.value

    @property
    def store(self) -> TableStore:
        """The connected store; raises ConnectivityError while disconnected."""
        if not self.is_connected:
            raise ConnectivityError(
                f"Not connected to {self.backend_name} store"
                + (f": {self.last_error}" if self.last_error else "")
            )
        return self._store

    async def connect(self) -> Optional[TableStore]:
        """
        Establish the connection, reusing an existing one.

        Concurrent callers share the same in-flight attempt. Returns ``None`` once
        every retry has failed; ``connected`` stays False and ``last_error`` holds
        the final failure.
        """
        if self.is_connected:
            logger.debug(f"♻️ Reusing existing {self.backend_name} connection")
            return self._store

        async with self._lock:
            if self.is_connected:
                return self._store

            total_attempts = self.max_retries + 1
            for attempt in range(total_attempts):
                if attempt:
                    delay = self.retry_base_delay * attempt
                    logger.info(f"🔄 Retrying {self.backend_name} connection in {delay:.1f}s")
                    await self._sleep(delay)

                self.attempts += 1
                logger.info(f"🔌 Connecting to {self.backend_name} store (attempt {attempt + 1}/{total_attempts})")
                try:
                    store = await self._open()
                except Exception as e:
                    self.last_error = str(e) or type(e).__name__
                    logger.warning(f"⚠️ {self.backend_name} connection attempt {attempt + 1} failed: {e}")
                    continue

                self._store = store
                self.last_error = None
                self.connected.set(True)
                logger.info(f"✅ Connected to {self.backend_name} store")
                return store

            logger.error(
                f"❌ Giving up on {self.backend_name} store after {total_attempts} attempts: {self.last_error}"
            )
            self.connected.set(False)
            return None

    def handle_connection_lost(self, error: Exception | str | None = None) -> None:
        """
        Record that the link dropped.

        When the drop was caused by an error and retries are allowed, a reconnect
        is scheduled on the running loop.
        """
        logger.warning(f"❌ Disconnected from {self.backend_name} store: {error or 'closed'}")
        self.connected.set(False)
        if error is not None:
            self.last_error = str(error)

        if error is None or self.max_retries == 0:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, reconnect not scheduled")
            return
        self._reconnect_task = loop.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        self._store = None
        await self.connect()

    async def disconnect(self) -> None:
        """Tear the connection down and cancel any pending reconnect."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        await self._close()
        self._store = None
        self.connected.set(False)
        logger.info(f"🔌 Disconnected from {self.backend_name} store")


class InMemoryConnectionManager(ConnectionManager):
    """
    Connection to a process-local store.

    The store is created on first connect and kept for the life of the manager,
    so reconnecting never loses session state.
    """

    backend_name = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._memory_store: Optional[TableStore] = None

    async def _open(self) -> TableStore:
        if self._memory_store is None:
            self._memory_store = TableStore.in_memory()
        return self._memory_store

    async def _reconnect(self) -> None:
        await self.connect()


class RedisConnectionManager(ConnectionManager):
    """Connection to tables kept in a Redis server."""

    backend_name = "redis"

    def __init__(self, redis_url: str, namespace: str = "blockguess", **kwargs):
        super().__init__(**kwargs)
        self.redis_url = redis_url
        self.namespace = namespace
        self.redis = None

    async def _open(self) -> TableStore:
        import redis

        client = redis.from_url(self.redis_url, decode_responses=True)
        await asyncio.to_thread(client.ping)
        self.redis = client
        return TableStore.redis(client, self.namespace)

    async def _close(self) -> None:
        if self.redis is not None:
            try:
                await asyncio.to_thread(self.redis.close)
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")
            self.redis = None


def create_connection_manager(settings: Settings, **kwargs) -> ConnectionManager:
    """Build the connection manager selected by ``settings.store_backend``."""
    options = dict(
        max_retries=settings.connection_max_retries,
        retry_base_delay=settings.connection_retry_base_delay_seconds,
    )
    options.update(kwargs)

    if settings.store_backend == "redis":
        logger.info("Using Redis table store")
        return RedisConnectionManager(settings.redis_url, settings.redis_namespace, **options)

    logger.info("Using in-memory table store")
    return InMemoryConnectionManager(**options)
