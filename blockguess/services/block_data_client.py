"""Async client for an Esplora-compatible block data API (e.g. mempool.space)."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol

import httpx

from blockguess.utils.exceptions import UpstreamDataError

logger = logging.getLogger(__name__)


class BlockDataSource(Protocol):
    """What the winner resolution needs from a block explorer."""

    async def block_hash_at_height(self, height: int) -> Optional[str]:
        """Hash of the block at ``height``, or ``None`` if it is not mined yet."""
        ...

    async def transaction_ids_for_block(self, block_hash: str) -> List[str]:
        """Transaction ids contained in the block."""
        ...


class MempoolBlockDataClient:
    """HTTP client for the ``/block-height`` and ``/block/{hash}/txids`` endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self):
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def startup(self) -> None:
        """Initialize the underlying HTTP client."""
        async with self._lock:
            if self._client is None:
                logger.info("Connecting to block data API at %s", self._base_url)
                self._client = httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=self._timeout,
                    transport=self._transport,
                )

    async def shutdown(self) -> None:
        """Close the underlying HTTP client."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.startup()
        assert self._client is not None
        return self._client

    async def block_hash_at_height(self, height: int) -> Optional[str]:
        client = await self._ensure_client()
        try:
            response = await client.get(f"/block-height/{height}")
        except httpx.HTTPError as exc:
            logger.error("Block hash request for height %s failed: %s", height, exc)
            raise UpstreamDataError(f"Block data API unavailable: {exc}") from exc

        if response.status_code == 404 or "not found" in response.text.lower():
            logger.debug("Block %s not mined yet", height)
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Block hash request for height %s returned %s", height, response.status_code)
            raise UpstreamDataError(f"Block data API error: {response.status_code}") from exc

        block_hash = response.text.strip()
        return block_hash or None

    async def transaction_ids_for_block(self, block_hash: str) -> List[str]:
        client = await self._ensure_client()
        try:
            response = await client.get(f"/block/{block_hash}/txids")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Transaction list request for block %s failed: %s", block_hash, exc)
            raise UpstreamDataError(f"Block data API unavailable: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamDataError(f"Malformed transaction list for block {block_hash}") from exc

        if not isinstance(data, list):
            raise UpstreamDataError(
                f"Unexpected transaction list format for block {block_hash}: {type(data).__name__}"
            )
        return [str(txid) for txid in data]

    async def health_check(self) -> bool:
        """Check that the API answers with the current tip height."""
        client = await self._ensure_client()
        try:
            response = await client.get("/blocks/tip/height")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Block data API health check failed: %s", exc)
            return False
        return response.text.strip().isdigit()

