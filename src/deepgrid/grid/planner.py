"""Planners: decide which orders to cancel and place for one cycle.

Three planners share the same inputs (ladder, pivot, open-order snapshots):

- seed: first cycle only. BUY at every level <= pivot, SELL above it.
- fill replacement (anchored): an order that vanished between two
  snapshots is treated as filled and replaced one level over on the
  opposite side. Never cancels.
- full resync: recompute the seeded ladder at the current pivot and diff
  it against what is resting.

All planners are pure. Nothing here talks to the exchange.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import UnknownLevelWarning
from .geometry import pivot_index
from .types import (
    CyclePlan,
    DesiredOrder,
    GridGeometry,
    OpenOrderSnapshot,
    Side,
    Strategy,
)

logger = logging.getLogger(__name__)

Key = Tuple[Side, int]


def open_keys(orders: Iterable[OpenOrderSnapshot]) -> Set[Key]:
    """(side, price_micro) keys of the resting orders."""
    return {o.key for o in orders}


def desired_ladder(geometry: GridGeometry, pivot: int) -> List[DesiredOrder]:
    """Full seeded ladder: BUY at index <= pivot, SELL above."""
    return [
        DesiredOrder(
            side=Side.BUY if level.index <= pivot else Side.SELL,
            price_micro=level.price_micro,
        )
        for level in geometry.levels
    ]


def plan_seed(
    geometry: GridGeometry, pivot: int, existing: Optional[Set[Key]] = None
) -> List[DesiredOrder]:
    """Seed the ladder around ``pivot``, skipping keys already resting.

    Skipping lets a restart against a live book re-seed without duplicating
    orders that survived the restart.
    """
    seen = set(existing or ())
    placements: List[DesiredOrder] = []
    for order in desired_ladder(geometry, pivot):
        if order.key in seen:
            continue
        seen.add(order.key)
        placements.append(order)
    return placements


def detect_closed(
    previous: Mapping[str, OpenOrderSnapshot],
    current: Mapping[str, OpenOrderSnapshot],
) -> List[OpenOrderSnapshot]:
    """Orders present in ``previous`` but gone from ``current``.

    Disappearance is the only fill signal the exchange gives, so an
    external cancellation looks exactly like a fill here.
    """
    return [order for oid, order in previous.items() if oid not in current]


def plan_fill_replacements(
    closed: Sequence[OpenOrderSnapshot],
    geometry: GridGeometry,
    current: Iterable[OpenOrderSnapshot],
) -> List[DesiredOrder]:
    """One replacement per closed grid order, shifted one level over.

    Filled BUY at i -> SELL at i + 1; filled SELL at i -> BUY at i - 1.
    Targets off the ladder, already resting, or already proposed this cycle
    are dropped.
    """
    index_by_price: Dict[int, int] = {
        lv.price_micro: lv.index for lv in geometry.levels
    }
    proposed = open_keys(current)
    placements: List[DesiredOrder] = []

    for order in closed:
        idx = index_by_price.get(order.price_micro)
        if idx is None:
            msg = (
                f"closed order {order.order_id} at price_micro "
                f"{order.price_micro} is not on the grid; skipping"
            )
            logger.warning(msg)
            warnings.warn(msg, UnknownLevelWarning, stacklevel=2)
            continue

        if order.side == Side.BUY:
            target_idx, target_side = idx + 1, Side.SELL
        else:
            target_idx, target_side = idx - 1, Side.BUY

        if target_idx < 0 or target_idx > geometry.top_index:
            continue

        target = DesiredOrder(
            side=target_side,
            price_micro=geometry.levels[target_idx].price_micro,
        )
        if target.key in proposed:
            continue
        proposed.add(target.key)
        placements.append(target)

    return placements


def plan_full_resync(
    geometry: GridGeometry, pivot: int, current: Sequence[OpenOrderSnapshot]
) -> Tuple[List[OpenOrderSnapshot], List[DesiredOrder]]:
    """Diff the ladder seeded at ``pivot`` against the resting orders.

    Returns (cancellations, placements). Resting orders whose key is not
    desired are cancelled, as are duplicates of a desired key beyond the
    first one, so the resting set converges to exactly the desired set.
    """
    desired = desired_ladder(geometry, pivot)
    wanted = {d.key for d in desired}

    cancellations: List[OpenOrderSnapshot] = []
    kept: Set[Key] = set()
    for order in current:
        if order.key not in wanted or order.key in kept:
            cancellations.append(order)
        else:
            kept.add(order.key)

    placements = [d for d in desired if d.key not in kept]
    return cancellations, placements


def plan_cycle(
    strategy: Strategy,
    geometry: GridGeometry,
    mid_micro: int,
    previous: Optional[Mapping[str, OpenOrderSnapshot]],
    current: Mapping[str, OpenOrderSnapshot],
) -> CyclePlan:
    """Run the planner for this cycle.

    With no previous snapshot the seed planner runs whatever the strategy.
    Otherwise anchored replaces fills and full-resync re-pivots on mid.
    """
    resting = list(current.values())

    if not previous:
        pivot = pivot_index(geometry.levels, mid_micro)
        return CyclePlan(
            placements=tuple(plan_seed(geometry, pivot, open_keys(resting)))
        )

    closed = detect_closed(previous, current)

    if strategy == Strategy.FULL_RESYNC:
        pivot = pivot_index(geometry.levels, mid_micro)
        cancellations, placements = plan_full_resync(geometry, pivot, resting)
        return CyclePlan(
            cancellations=tuple(cancellations),
            placements=tuple(placements),
            closed=tuple(closed),
        )

    placements = plan_fill_replacements(closed, geometry, resting)
    return CyclePlan(placements=tuple(placements), closed=tuple(closed))
