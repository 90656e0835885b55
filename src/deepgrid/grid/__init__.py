"""Anchored grid reconciliation engine.

Builds a tick-aligned price ladder, seeds it around the mid price, and keeps
it populated by diffing periodic open-order snapshots to infer fills.
"""

from .engine import ReconciliationDriver
from .errors import (
    ConfigurationError,
    DeepgridError,
    GatewayReadError,
    GeometryError,
    SubmissionError,
    UnknownLevelWarning,
)
from .geometry import auto_range, build_levels, order_size, pivot_index
from .planner import (
    detect_closed,
    plan_cycle,
    plan_fill_replacements,
    plan_full_resync,
    plan_seed,
)
from .runner import GridLoop, GridService
from .types import (
    BatchReceipt,
    BookParams,
    CyclePlan,
    CycleSummary,
    DesiredOrder,
    GridConfig,
    GridGeometry,
    OpenOrderSnapshot,
    OrderPlacement,
    Phase,
    PriceLevel,
    ReconciliationState,
    ServiceStatus,
    Side,
    Strategy,
)

__all__ = [
    "BatchReceipt",
    "BookParams",
    "ConfigurationError",
    "CyclePlan",
    "CycleSummary",
    "DeepgridError",
    "DesiredOrder",
    "GatewayReadError",
    "GeometryError",
    "GridConfig",
    "GridGeometry",
    "GridLoop",
    "GridService",
    "OpenOrderSnapshot",
    "OrderPlacement",
    "Phase",
    "PriceLevel",
    "ReconciliationDriver",
    "ReconciliationState",
    "ServiceStatus",
    "Side",
    "Strategy",
    "SubmissionError",
    "UnknownLevelWarning",
    "auto_range",
    "build_levels",
    "detect_closed",
    "order_size",
    "pivot_index",
    "plan_cycle",
    "plan_fill_replacements",
    "plan_full_resync",
    "plan_seed",
]
