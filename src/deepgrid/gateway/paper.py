"""PaperGateway: in-memory order book for dry runs and tests."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..grid.geometry import price_to_micro
from ..grid.types import (
    BatchReceipt,
    BookParams,
    OpenOrderSnapshot,
    OrderPlacement,
    Side,
)
from .base import ExchangeGateway
from .indexer import DeepbookIndexer

logger = logging.getLogger(__name__)


class PaperGateway(ExchangeGateway):
    """Simulated exchange that fills resting orders when mid crosses them.

    A resting BUY fills once mid trades strictly below its price, a resting
    SELL once mid trades strictly above it. Filled orders simply disappear
    from ``list_open_orders``, which is all a real exchange shows too.

    Mid price and book params come from ``market`` (e.g. a DeepbookIndexer)
    when given, otherwise from ``set_mid_price`` and ``book``.

    Args:
        book: Fixed BookParams (required when no market source is given).
        market: Optional live market data source.
    """

    def __init__(
        self,
        book: Optional[BookParams] = None,
        market: Optional[DeepbookIndexer] = None,
    ):
        if book is None and market is None:
            raise ValueError("PaperGateway needs book params or a market source")
        self._book = book
        self._market = market
        self._mids: Dict[str, float] = {}
        self._orders: Dict[Tuple[str, str], Dict[str, OpenOrderSnapshot]] = {}
        self._next_order_id = 1
        self._batches = 0
        self._fail_next = False
        self.fills: List[OpenOrderSnapshot] = []

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------

    def set_mid_price(self, instrument: str, price: float) -> List[OpenOrderSnapshot]:
        """Move the market and fill every order it crosses. Returns fills."""
        self._mids[instrument] = price
        return self._match(instrument, price_to_micro(price))

    def fail_next_submit(self) -> None:
        """Make the next submit_batch raise, leaving the book untouched."""
        self._fail_next = True

    def remove_order(self, account: str, instrument: str, order_id: str) -> None:
        """Drop a resting order out of band (e.g. a manual cancel)."""
        self._orders.get((account, instrument), {}).pop(order_id, None)

    def _match(self, instrument: str, mid_micro: int) -> List[OpenOrderSnapshot]:
        filled: List[OpenOrderSnapshot] = []
        for (_, inst), book in self._orders.items():
            if inst != instrument:
                continue
            for oid in list(book):
                order = book[oid]
                crossed = (
                    order.side == Side.BUY and mid_micro < order.price_micro
                ) or (order.side == Side.SELL and mid_micro > order.price_micro)
                if crossed:
                    del book[oid]
                    filled.append(order)
        if filled:
            logger.info("paper %s: %d orders filled", instrument, len(filled))
        self.fills.extend(filled)
        return filled

    # ------------------------------------------------------------------
    # ExchangeGateway
    # ------------------------------------------------------------------

    async def get_mid_price(self, instrument: str) -> float:
        if self._market is not None:
            mid = await self._market.mid_price(instrument)
            self.set_mid_price(instrument, mid)
            return mid
        if instrument not in self._mids:
            raise ValueError(f"no mid price set for {instrument}")
        return self._mids[instrument]

    async def get_book_params(self, instrument: str) -> BookParams:
        if self._book is not None:
            return self._book
        return await self._market.book_params(instrument)

    async def list_open_orders(
        self, account: str, instrument: str
    ) -> List[OpenOrderSnapshot]:
        return list(self._orders.get((account, instrument), {}).values())

    async def submit_batch(
        self,
        account: str,
        instrument: str,
        cancellations: Sequence[str],
        placements: Sequence[OrderPlacement],
    ) -> BatchReceipt:
        if self._fail_next:
            self._fail_next = False
            raise ConnectionError("simulated submission failure")

        book = self._orders.setdefault((account, instrument), {})
        missing = [oid for oid in cancellations if oid not in book]
        if missing:
            # whole batch aborts, like a failed transaction
            raise ValueError(f"cannot cancel unknown orders: {missing}")

        for oid in cancellations:
            del book[oid]
        for p in placements:
            oid = str(self._next_order_id)
            self._next_order_id += 1
            book[oid] = OpenOrderSnapshot(
                order_id=oid,
                side=p.side,
                price_micro=p.price_micro,
                quantity=p.quantity,
                client_order_id=str(p.client_order_id),
            )

        self._batches += 1
        return BatchReceipt(digest=f"paper-{self._batches}", status="success")

    async def close(self) -> None:
        if self._market is not None:
            await self._market.close()
