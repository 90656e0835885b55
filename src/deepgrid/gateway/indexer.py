"""DeepBook indexer REST client for market data (mid price, book params)."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import aiohttp

from ..grid.types import BookParams

logger = logging.getLogger(__name__)

INDEXER_URLS = {
    "mainnet": "https://deepbook-indexer.mainnet.mystenlabs.com",
    "testnet": "https://deepbook-indexer.testnet.mystenlabs.com",
}

FLOAT_SCALING = 1_000_000_000  # on-chain price scaling


class DeepbookIndexer:
    """Read-only market data from the DeepBook indexer.

    Mid price is the average of the best bid and best ask of the level-1
    order book. Book params come from ``/get_pools`` and are converted
    from on-chain integer units using the pool's asset decimals. Pool
    metadata is cached per instance; book params are re-derived from it on
    every call.

    Args:
        network: "mainnet" or "testnet".
        base_url: Override endpoint (for testing).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        network: str = "mainnet",
        base_url: Optional[str] = None,
        timeout: float = 8.0,
    ):
        if base_url is None:
            if network not in INDEXER_URLS:
                raise ValueError(
                    f"Unknown network: {network}. "
                    f"Available: {list(INDEXER_URLS.keys())}"
                )
            base_url = INDEXER_URLS[network]
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._pools: Dict[str, dict] = {}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
        return self._session

    async def _get_json(self, path: str, params: Optional[dict] = None):
        session = self._get_session()
        async with session.get(f"{self._base_url}{path}", params=params) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def mid_price(self, pool: str) -> float:
        """Average of best bid and best ask."""
        book = await self._get_json(
            f"/orderbook/{pool}", params={"level": "1", "depth": "2"}
        )
        return self._extract_mid_price(book)

    async def book_params(self, pool: str) -> BookParams:
        info = self._pools.get(pool)
        if info is None:
            await self._load_pools()
            info = self._pools.get(pool)
        if info is None:
            raise ValueError(f"Unknown DeepBook pool: {pool}")
        return self._parse_book_params(info)

    async def _load_pools(self) -> None:
        pools = await self._get_json("/get_pools")
        self._pools = {p["pool_name"]: p for p in pools}
        logger.info("Loaded %d DeepBook pools from %s", len(self._pools), self._base_url)

    @staticmethod
    def _extract_mid_price(book: dict) -> float:
        bids = book.get("bids", [])
        asks = book.get("asks", [])
        if not bids or not asks:
            raise ValueError("order book has no two-sided quote")
        best_bid = float(bids[0][0])
        best_ask = float(asks[0][0])
        return (best_bid + best_ask) / 2

    @staticmethod
    def _parse_book_params(info: dict) -> BookParams:
        """Convert on-chain tick/lot/min units into human units."""
        base_scalar = 10 ** int(info["base_asset_decimals"])
        quote_scalar = 10 ** int(info["quote_asset_decimals"])
        tick_size = (
            float(info["tick_size"]) * base_scalar / quote_scalar / FLOAT_SCALING
        )
        return BookParams(
            tick_size=tick_size,
            lot_size=float(info["lot_size"]) / base_scalar,
            min_size=float(info["min_size"]) / base_scalar,
        )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
