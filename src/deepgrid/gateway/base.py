"""Exchange gateway interface consumed by the reconciliation driver."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

from ..grid.types import BatchReceipt, BookParams, OpenOrderSnapshot, OrderPlacement


class ExchangeGateway(ABC):
    """Async boundary between the engine and an order-book exchange.

    Transport, authentication and transaction construction live behind
    this interface. The driver only reads market state, lists the resting
    orders of one account, and submits one batch per cycle.

    ``submit_batch`` must apply the batch atomically (all or nothing) and
    raise on failure; the driver then keeps its previous snapshot and
    retries on the next cycle.
    """

    @abstractmethod
    async def get_mid_price(self, instrument: str) -> float:
        """Return the current mid price (human units)."""
        ...

    @abstractmethod
    async def get_book_params(self, instrument: str) -> BookParams:
        """Return tick size, lot size and min size for the instrument."""
        ...

    @abstractmethod
    async def list_open_orders(
        self, account: str, instrument: str
    ) -> List[OpenOrderSnapshot]:
        """Return every resting order of ``account`` on ``instrument``."""
        ...

    @abstractmethod
    async def submit_batch(
        self,
        account: str,
        instrument: str,
        cancellations: Sequence[str],
        placements: Sequence[OrderPlacement],
    ) -> BatchReceipt:
        """Cancel ``cancellations`` (order ids) then place ``placements``."""
        ...

    async def close(self) -> None:
        """Clean up connections. Override if stateful."""
        pass
