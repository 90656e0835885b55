"""Data types for the grid reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError

PRICE_SCALE = 1_000_000  # price micro units


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class Strategy(str, Enum):
    """Reconciliation strategy, fixed for the life of one running engine."""

    ANCHORED = "anchored"  # seed once, replace on fills, never cancel
    FULL_RESYNC = "full-resync"  # re-pivot and diff the whole ladder every cycle


class Phase(str, Enum):
    STOPPED = "STOPPED"
    SEEDING = "SEEDING"
    STEADY = "STEADY"


@dataclass(frozen=True, slots=True)
class GridConfig:
    """User grid parameters. Immutable for one engine run."""

    min_price: float
    max_price: float
    level_count: int  # intervals; the ladder has level_count + 1 lines
    order_size: float  # base quantity per order

    def validate(self) -> None:
        """Raise ConfigurationError if the config cannot describe a grid."""
        if self.min_price <= 0 or self.max_price <= 0:
            raise ConfigurationError(
                f"prices must be positive (min={self.min_price}, max={self.max_price})"
            )
        if self.max_price <= self.min_price:
            raise ConfigurationError(
                f"max_price must be > min_price (got {self.min_price} >= {self.max_price})"
            )
        if self.level_count < 2:
            raise ConfigurationError(
                f"level_count must be >= 2 (got {self.level_count})"
            )
        if self.order_size <= 0:
            raise ConfigurationError(
                f"order_size must be positive (got {self.order_size})"
            )


@dataclass(frozen=True, slots=True)
class BookParams:
    """Exchange quantization for one instrument."""

    tick_size: float
    lot_size: float
    min_size: float


@dataclass(frozen=True, slots=True)
class PriceLevel:
    index: int
    price_micro: int

    @property
    def price(self) -> float:
        return self.price_micro / PRICE_SCALE


@dataclass(frozen=True, slots=True)
class GridGeometry:
    """Ladder built from a GridConfig and the current BookParams."""

    levels: Tuple[PriceLevel, ...]
    tick_micro: int
    step_micro: int

    @property
    def prices(self) -> List[float]:
        return [lv.price for lv in self.levels]

    @property
    def top_index(self) -> int:
        return len(self.levels) - 1

    def index_of(self, price_micro: int) -> Optional[int]:
        """Return the ladder index at exactly this price, or None."""
        for level in self.levels:
            if level.price_micro == price_micro:
                return level.index
        return None


@dataclass(frozen=True, slots=True)
class DesiredOrder:
    side: Side
    price_micro: int

    @property
    def key(self) -> Tuple[Side, int]:
        return (self.side, self.price_micro)

    @property
    def price(self) -> float:
        return self.price_micro / PRICE_SCALE


@dataclass(frozen=True, slots=True)
class OrderPlacement:
    """A desired order with the quantity and client id it is submitted with."""

    side: Side
    price_micro: int
    quantity: float
    client_order_id: int

    @property
    def price(self) -> float:
        return self.price_micro / PRICE_SCALE

    @property
    def is_bid(self) -> bool:
        return self.side == Side.BUY


@dataclass(frozen=True, slots=True)
class OpenOrderSnapshot:
    """One resting order as reported by the exchange."""

    order_id: str
    side: Side
    price_micro: int
    quantity: float = 0.0
    filled_quantity: float = 0.0
    client_order_id: Optional[str] = None

    @property
    def key(self) -> Tuple[Side, int]:
        return (self.side, self.price_micro)


@dataclass
class ReconciliationState:
    """Mutable state carried between cycles. Owned by the driver only."""

    previous_snapshot: Optional[Dict[str, OpenOrderSnapshot]] = None
    client_order_sequence: int = 0


@dataclass(frozen=True, slots=True)
class CyclePlan:
    """Planner output for one cycle."""

    cancellations: Tuple[OpenOrderSnapshot, ...] = ()
    placements: Tuple[DesiredOrder, ...] = ()
    closed: Tuple[OpenOrderSnapshot, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.cancellations and not self.placements


@dataclass(frozen=True, slots=True)
class BatchReceipt:
    digest: Optional[str] = None
    status: Optional[str] = None


@dataclass
class CycleSummary:
    """Structured result of one reconciliation cycle."""

    timestamp: datetime
    instrument: str = ""
    strategy: str = Strategy.ANCHORED.value
    phase: str = Phase.STOPPED.value
    mid_price: Optional[float] = None
    existing_count: int = 0
    closed_count: int = 0
    placed_count: int = 0
    cancelled_count: int = 0
    order_size: Optional[float] = None
    tick_micro: Optional[int] = None
    step_micro: Optional[int] = None
    levels: List[float] = field(default_factory=list)
    planned: List[Dict[str, object]] = field(default_factory=list)
    dry_run: bool = False
    digest: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_noop(self) -> bool:
        return self.ok and self.placed_count == 0 and self.cancelled_count == 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "ts": self.timestamp.isoformat(),
            "instrument": self.instrument,
            "strategy": self.strategy,
            "phase": self.phase,
            "mid": self.mid_price,
            "existing": self.existing_count,
            "closed": self.closed_count,
            "place": self.placed_count,
            "cancel": self.cancelled_count,
            "size": self.order_size,
            "grid": {
                "tickMicro": self.tick_micro,
                "stepMicro": self.step_micro,
                "lines": list(self.levels),
            },
            "planned": list(self.planned),
            "dryRun": self.dry_run,
            "digest": self.digest,
            "error": self.error,
        }


@dataclass
class ServiceStatus:
    running: bool
    last_error: Optional[str] = None
    last_cycle_summary: Optional[CycleSummary] = None
    phase: str = Phase.STOPPED.value
    strategy: Optional[str] = None
    config: Optional[GridConfig] = None
