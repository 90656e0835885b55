"""Grid geometry: turns (min, max, level count, tick size) into a ladder of
tick-aligned price levels, and locates the pivot that splits BUY from SELL.

All comparisons happen on integer micro prices (price * 1_000_000) so that
ladder lines can be used as exact dictionary/set keys.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

from .errors import ConfigurationError, GeometryError
from .types import PRICE_SCALE, BookParams, GridConfig, GridGeometry, PriceLevel


def price_to_micro(price: float) -> int:
    return int(round(price * PRICE_SCALE))


def micro_to_price(micro: int) -> float:
    return micro / PRICE_SCALE


def tick_to_micro(tick_size: float) -> int:
    """Tick size in micro units, never below 1."""
    return max(1, int(round(tick_size * PRICE_SCALE)))


def floor_to_tick(micro: int, tick_micro: int) -> int:
    return (micro // tick_micro) * tick_micro


def ceil_to_tick(micro: int, tick_micro: int) -> int:
    return -((-micro) // tick_micro) * tick_micro


def round_to_tick(micro: int, tick_micro: int) -> int:
    return int(round(micro / tick_micro)) * tick_micro


def round_down_to_lot(size: float, lot_size: float) -> float:
    """Round a quantity down to a whole number of lots."""
    if lot_size <= 0:
        return size
    # 1e-9 absorbs float error such as 0.3 / 0.1 == 2.9999999999999996
    lots = math.floor(size / lot_size + 1e-9)
    return round(lots * lot_size, 10)


def build_levels(config: GridConfig, book: BookParams) -> GridGeometry:
    """Build ``level_count + 1`` strictly increasing, tick-aligned levels.

    Min is floored and max is ceiled to the tick. The step is the raw step
    floored to the tick (at least one tick), and the last line is forced to
    the ceiled max so the configured ceiling is always hit.
    """
    if config.level_count < 2:
        raise ConfigurationError(
            f"level_count must be >= 2 (got {config.level_count})"
        )
    if book.tick_size <= 0:
        raise GeometryError(f"tick_size must be positive (got {book.tick_size})")

    tick_micro = tick_to_micro(book.tick_size)
    min_micro = floor_to_tick(price_to_micro(config.min_price), tick_micro)
    max_micro = ceil_to_tick(price_to_micro(config.max_price), tick_micro)

    if max_micro <= min_micro:
        raise ConfigurationError(
            f"max_price must be > min_price after tick alignment "
            f"({micro_to_price(min_micro)} >= {micro_to_price(max_micro)})"
        )

    raw_step = (max_micro - min_micro) // config.level_count
    step_micro = max(tick_micro, floor_to_tick(raw_step, tick_micro))
    if step_micro <= 0:
        raise GeometryError("grid step too small for tick size")

    lines = [min_micro + i * step_micro for i in range(config.level_count + 1)]
    lines[-1] = max_micro

    for i in range(1, len(lines)):
        if lines[i] <= lines[i - 1]:
            raise GeometryError(
                "levels are not strictly increasing; "
                "adjust min/max/level_count for this tick size"
            )

    levels = tuple(PriceLevel(index=i, price_micro=p) for i, p in enumerate(lines))
    return GridGeometry(levels=levels, tick_micro=tick_micro, step_micro=step_micro)


def order_size(config: GridConfig, book: BookParams) -> float:
    """Lot-rounded order size. Fails closed if it ends up below min size."""
    size = round_down_to_lot(max(book.min_size, config.order_size), book.lot_size)
    if size <= 0 or size < book.min_size:
        raise GeometryError(
            f"order size too small after lot rounding "
            f"(size={size}, min_size={book.min_size}, lot_size={book.lot_size})"
        )
    return size


def pivot_index(levels: Sequence[PriceLevel], mid_micro: int) -> int:
    """Greatest index whose price is <= mid, clamped to the ladder.

    A level exactly at mid counts as "at or below" and so anchors a BUY.
    """
    lo = 0
    hi = len(levels) - 1
    while lo < hi:
        probe = (lo + hi + 1) // 2
        if levels[probe].price_micro <= mid_micro:
            lo = probe
        else:
            hi = probe - 1
    return max(0, min(lo, len(levels) - 1))


def auto_range(
    mid_price: float, tick_size: float, level_count: int, step_ticks: int
) -> Tuple[float, float]:
    """Centre a range of ``level_count`` steps of ``step_ticks`` ticks on mid."""
    if step_ticks <= 0:
        raise ConfigurationError(f"step_ticks must be positive (got {step_ticks})")
    if level_count < 2:
        raise ConfigurationError(
            f"level_count must be >= 2 (got {level_count})"
        )
    tick_micro = tick_to_micro(tick_size)
    half_micro = (level_count * step_ticks * tick_micro) // 2
    mid_micro = price_to_micro(mid_price)
    min_micro = floor_to_tick(mid_micro - half_micro, tick_micro)
    max_micro = ceil_to_tick(mid_micro + half_micro, tick_micro)
    if min_micro <= 0:
        raise ConfigurationError(
            "auto range falls below zero; use fewer levels or a smaller step"
        )
    return micro_to_price(min_micro), micro_to_price(max_micro)
