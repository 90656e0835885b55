"""ReconciliationDriver: runs one grid reconciliation cycle against a gateway.

Per cycle:
  1. Read mid price and book params
  2. Rebuild geometry and lot-rounded order size from the latest params
  3. Read the open-order snapshot
  4. Plan: seed if there is no previous snapshot, else the configured strategy
  5. Empty plan -> no-op, adopt the snapshot
  6. Build one batch: cancellations first, then placements
  7. Submit; adopt the snapshot only if submission succeeded
  8. Emit a CycleSummary

The previous snapshot is the only state carried between cycles. A failed
read or submit leaves it untouched so the next cycle re-derives the same
fills from the same pair of snapshots.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from ..gateway.base import ExchangeGateway
from .errors import DeepgridError, GatewayReadError, SubmissionError
from .geometry import build_levels, order_size, price_to_micro
from .planner import plan_cycle
from .types import (
    BookParams,
    CyclePlan,
    CycleSummary,
    DesiredOrder,
    GridConfig,
    GridGeometry,
    OpenOrderSnapshot,
    OrderPlacement,
    Phase,
    ReconciliationState,
    Strategy,
)

logger = logging.getLogger(__name__)

CLIENT_ORDER_SEQ_MOD = 10_000


class ReconciliationDriver:
    """Owns the reconciliation state for one (account, instrument) pair.

    Args:
        gateway: ExchangeGateway used for reads and batch submission.
        account: Account / balance manager key the orders belong to.
        instrument: Pool / market key.
        config: GridConfig, validated on construction.
        strategy: Strategy.ANCHORED or Strategy.FULL_RESYNC (or their values).
        dry_run: Plan and report batches without submitting them.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        account: str,
        instrument: str,
        config: GridConfig,
        strategy: Union[Strategy, str] = Strategy.ANCHORED,
        dry_run: bool = False,
    ) -> None:
        config.validate()
        self.gateway = gateway
        self.account = account
        self.instrument = instrument
        self.config = config
        self.strategy = Strategy(strategy)
        self.dry_run = dry_run

        self._state = ReconciliationState()
        self._active = False
        self._in_flight = False
        self.last_summary: Optional[CycleSummary] = None

        self._callbacks: Dict[str, List[Callable]] = {"cycle": []}

    # ------------------------------------------------------------------
    # Events / state
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable) -> "ReconciliationDriver":
        """Register an event callback. Events: 'cycle'."""
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        return self

    def _emit(self, event: str, *args) -> None:
        for cb in self._callbacks.get(event, []):
            try:
                cb(*args)
            except Exception:
                logger.exception("%s: %r callback raised", self.instrument, event)

    @property
    def phase(self) -> Phase:
        if not self._active:
            return Phase.STOPPED
        if not self._state.previous_snapshot:
            return Phase.SEEDING
        return Phase.STEADY

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def previous_snapshot(self) -> Optional[Dict[str, OpenOrderSnapshot]]:
        """Copy of the retained snapshot (read-only view for callers)."""
        prev = self._state.previous_snapshot
        return dict(prev) if prev is not None else None

    def reset(self) -> None:
        """Discard reconciliation state. The next cycle re-seeds."""
        self._state = ReconciliationState()
        self._active = False

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def preflight(self) -> GridGeometry:
        """Validate geometry and order size against live book params."""
        book = await self._read_book_params()
        geometry = build_levels(self.config, book)
        order_size(self.config, book)
        return geometry

    async def tick(self) -> Optional[CycleSummary]:
        """Run one cycle. Returns None if a cycle is already in flight.

        Never raises for cycle-level failures: the error is reported in
        ``CycleSummary.error`` and state is left ready for a retry.
        """
        if self._in_flight:
            logger.debug("%s: cycle in flight, skipping tick", self.instrument)
            return None

        self._in_flight = True
        self._active = True
        summary = CycleSummary(
            timestamp=datetime.now(tz=timezone.utc),
            instrument=self.instrument,
            strategy=self.strategy.value,
            phase=self.phase.value,
            dry_run=self.dry_run,
        )
        try:
            await self._run_cycle(summary)
        except DeepgridError as e:
            summary.error = str(e)
            logger.warning("%s: cycle failed: %s", self.instrument, e)
        except Exception as e:
            summary.error = f"{type(e).__name__}: {e}"
            logger.exception("%s: unexpected cycle error", self.instrument)
        finally:
            self._in_flight = False

        self.last_summary = summary
        self._emit("cycle", summary)
        return summary

    async def _run_cycle(self, summary: CycleSummary) -> None:
        mid = await self._read_mid_price()
        summary.mid_price = mid
        book = await self._read_book_params()

        geometry = build_levels(self.config, book)
        size = order_size(self.config, book)
        summary.order_size = size
        summary.tick_micro = geometry.tick_micro
        summary.step_micro = geometry.step_micro
        summary.levels = geometry.prices

        current = await self._read_open_orders()
        summary.existing_count = len(current)

        plan = plan_cycle(
            self.strategy,
            geometry,
            price_to_micro(mid),
            self._state.previous_snapshot,
            current,
        )
        summary.closed_count = len(plan.closed)

        if plan.is_empty:
            self._state.previous_snapshot = current
            return

        placements = [self._to_placement(d, size) for d in plan.placements]
        summary.planned = [
            {"side": p.side.value, "priceMicro": p.price_micro, "price": p.price}
            for p in placements
        ]

        if not self.dry_run:
            summary.digest = await self._submit(plan, placements)

        self._state.previous_snapshot = current
        summary.placed_count = len(placements)
        summary.cancelled_count = len(plan.cancellations)

    async def _submit(
        self, plan: CyclePlan, placements: List[OrderPlacement]
    ) -> Optional[str]:
        cancel_ids = [o.order_id for o in plan.cancellations]
        try:
            receipt = await self.gateway.submit_batch(
                self.account, self.instrument, cancel_ids, placements
            )
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(f"batch submission failed: {e}") from e

        logger.info(
            "%s: submitted batch cancel=%d place=%d digest=%s",
            self.instrument, len(cancel_ids), len(placements), receipt.digest,
        )
        return receipt.digest

    def _to_placement(self, order: DesiredOrder, size: float) -> OrderPlacement:
        return OrderPlacement(
            side=order.side,
            price_micro=order.price_micro,
            quantity=size,
            client_order_id=self._next_client_order_id(),
        )

    def _next_client_order_id(self) -> int:
        """Millisecond timestamp with a rolling 4-digit sequence appended."""
        base = int(time.time() * 1000)
        self._state.client_order_sequence = (
            self._state.client_order_sequence + 1
        ) % CLIENT_ORDER_SEQ_MOD
        return base * CLIENT_ORDER_SEQ_MOD + self._state.client_order_sequence

    # ------------------------------------------------------------------
    # Gateway reads
    # ------------------------------------------------------------------

    async def _read_mid_price(self) -> float:
        try:
            mid = await self.gateway.get_mid_price(self.instrument)
        except GatewayReadError:
            raise
        except Exception as e:
            raise GatewayReadError(f"mid price read failed: {e}") from e
        if mid is None or mid <= 0:
            raise GatewayReadError(f"invalid mid price: {mid}")
        return float(mid)

    async def _read_book_params(self) -> BookParams:
        try:
            return await self.gateway.get_book_params(self.instrument)
        except GatewayReadError:
            raise
        except Exception as e:
            raise GatewayReadError(f"book params read failed: {e}") from e

    async def _read_open_orders(self) -> Dict[str, OpenOrderSnapshot]:
        try:
            orders = await self.gateway.list_open_orders(
                self.account, self.instrument
            )
        except GatewayReadError:
            raise
        except Exception as e:
            raise GatewayReadError(f"open orders read failed: {e}") from e
        return {o.order_id: o for o in orders}
