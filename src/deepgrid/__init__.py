"""deepgrid — anchored grid bot engine for on-chain order books.

Engine owns the ladder. The exchange only reports resting orders.
Fills are inferred by diffing snapshots. Failed submits are retried
from the same snapshot, never double-replaced.

Quick start:
    from deepgrid import GridConfig, BookParams, GridService, PaperGateway

    gateway = PaperGateway(book=BookParams(0.0001, 0.1, 1.0))
    gateway.set_mid_price("SUI_USDC", 0.955)

    service = GridService(gateway, account="MANAGER", instrument="SUI_USDC")
    await service.start(
        GridConfig(min_price=0.94, max_price=0.97, level_count=6, order_size=1.0),
        strategy="anchored",
        interval_ms=5000,
    )
"""

from .version import __version__

# Engine
from .grid.engine import ReconciliationDriver
from .grid.runner import GridLoop, GridService

# Geometry and planners
from .grid.geometry import auto_range, build_levels, order_size, pivot_index
from .grid.planner import plan_cycle, plan_fill_replacements, plan_full_resync, plan_seed

# Types
from .grid.types import (
    BatchReceipt,
    BookParams,
    CycleSummary,
    DesiredOrder,
    GridConfig,
    OpenOrderSnapshot,
    OrderPlacement,
    Phase,
    PriceLevel,
    ServiceStatus,
    Side,
    Strategy,
)

# Errors
from .grid.errors import (
    ConfigurationError,
    DeepgridError,
    GatewayReadError,
    GeometryError,
    SubmissionError,
    UnknownLevelWarning,
)

# Gateways
from .gateway import DeepbookIndexer, ExchangeGateway, PaperGateway

__all__ = [
    # Engine
    "ReconciliationDriver",
    "GridLoop",
    "GridService",
    # Geometry / planners
    "auto_range",
    "build_levels",
    "order_size",
    "pivot_index",
    "plan_cycle",
    "plan_fill_replacements",
    "plan_full_resync",
    "plan_seed",
    # Types
    "BatchReceipt",
    "BookParams",
    "CycleSummary",
    "DesiredOrder",
    "GridConfig",
    "OpenOrderSnapshot",
    "OrderPlacement",
    "Phase",
    "PriceLevel",
    "ServiceStatus",
    "Side",
    "Strategy",
    # Errors
    "ConfigurationError",
    "DeepgridError",
    "GatewayReadError",
    "GeometryError",
    "SubmissionError",
    "UnknownLevelWarning",
    # Gateways
    "DeepbookIndexer",
    "ExchangeGateway",
    "PaperGateway",
]
