"""One game session: connection, reducers, resolution engine and chat feed.

The session is the explicit owner of the store connection. It connects on
``start()`` and releases everything on ``close()``, so nothing is shared between
sessions through module state.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from blockguess.config import Settings, get_settings
from blockguess.services.block_data_client import BlockDataSource, MempoolBlockDataClient
from blockguess.services.chat_feed_service import ChatFeed
from blockguess.services.round_lifecycle_service import RoundLifecycleManager
from blockguess.services.winner_resolution_service import WinnerResolutionEngine
from blockguess.store.connection import ConnectionManager, create_connection_manager
from blockguess.store.table_store import TableStore
from blockguess.utils.datetime_helpers import utc_now
from blockguess.utils.exceptions import ConnectivityError

logger = logging.getLogger(__name__)


class GameSession:
    """Wires the game core together for one process or test."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connection: Optional[ConnectionManager] = None,
        block_source: Optional[BlockDataSource] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self.connection = connection or create_connection_manager(self.settings)
        self._owns_block_source = block_source is None
        self.block_source = block_source or MempoolBlockDataClient(
            base_url=self.settings.block_api_url,
            timeout=self.settings.block_api_timeout_seconds,
        )
        self.lifecycle = RoundLifecycleManager(self.connection, self.settings, clock=clock)
        self.engine = WinnerResolutionEngine(self.lifecycle, self.block_source)
        self.chat_feed: Optional[ChatFeed] = None
        self._store: Optional[TableStore] = None
        self._unsubscribe_connectivity: Optional[Callable[[], None]] = None

    @property
    def connected(self) -> bool:
        return self.connection.connected.value

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        """Connect to the store and start the background resolution."""
        store = await self.connection.connect()
        if store is None:
            raise ConnectivityError(f"Could not connect to store: {self.connection.last_error}")

        self._bind_feed(store)
        self.engine.start()
        self._unsubscribe_connectivity = self.connection.connected.subscribe(self._on_connectivity_changed)
        logger.info("🟢 Game session started")

    async def close(self) -> None:
        """Stop the engine, drop subscriptions and disconnect."""
        if self._unsubscribe_connectivity is not None:
            self._unsubscribe_connectivity()
            self._unsubscribe_connectivity = None
        await self.engine.stop()
        if self.chat_feed is not None:
            self.chat_feed.close()
            self.chat_feed = None
        self._store = None

        if self._owns_block_source and isinstance(self.block_source, MempoolBlockDataClient):
            try:
                await self.block_source.shutdown()
            except Exception as e:
                logger.error(f"Error closing block data client: {e}")

        await self.connection.disconnect()
        logger.info("🔴 Game session closed")

    def _bind_feed(self, store: TableStore) -> None:
        if self.chat_feed is not None:
            self.chat_feed.close()
        self.chat_feed = ChatFeed(store.chat_messages, limit=self.settings.chat_history_limit)
        self._store = store

    def _on_connectivity_changed(self, connected: bool) -> None:
        """Re-attach the feed and the engine when a reconnect hands out new tables."""
        if not connected:
            return
        try:
            store = self.connection.store
        except ConnectivityError:
            return
        if store is self._store:
            return

        logger.info("🔁 Store replaced after reconnect, re-attaching chat feed and resolution engine")
        self._bind_feed(store)
        self.engine.rebind()
