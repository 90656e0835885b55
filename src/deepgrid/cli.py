"""Command-line runner: paper-trades a grid against live DeepBook prices.

Options default to the environment variables the bot has always used
(GRID_MIN, GRID_MAX, GRID_GRIDS, GRID_SIZE, BOT_MS, ...), so a deployment
can be configured entirely from its environment. Each completed cycle is
printed as one JSON line.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Mapping, Optional

from .gateway.indexer import INDEXER_URLS, DeepbookIndexer
from .gateway.paper import PaperGateway
from .grid.engine import ReconciliationDriver
from .grid.errors import DeepgridError, GatewayReadError
from .grid.geometry import auto_range
from .grid.runner import DEFAULT_INTERVAL_MS, GridLoop
from .grid.types import CycleSummary, GridConfig, Strategy

logger = logging.getLogger(__name__)


def _env_float(env: Mapping[str, str], name: str) -> Optional[float]:
    raw = env.get(name)
    if raw is None or raw == "":
        return None
    return float(raw)


def build_parser(env: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    grids = env.get("GRID_GRIDS") or env.get("GRID_LEVELS")

    ap = argparse.ArgumentParser(
        prog="deepgrid",
        description="Run an anchored grid against a paper book fed by live DeepBook prices.",
    )
    ap.add_argument("--network", default=env.get("SUI_ENV", "testnet"),
                    choices=sorted(INDEXER_URLS))
    ap.add_argument("--pool", default=env.get("DEEPBOOK_POOL_KEY", "SUI_DBUSDC"))
    ap.add_argument("--account", default=env.get("BALANCE_MANAGER_KEY", "MANAGER"))
    ap.add_argument("--min", dest="min_price", type=float,
                    default=_env_float(env, "GRID_MIN"))
    ap.add_argument("--max", dest="max_price", type=float,
                    default=_env_float(env, "GRID_MAX"))
    ap.add_argument("--grids", type=int, default=int(grids) if grids else None,
                    help="Number of grid intervals (levels = grids + 1).")
    ap.add_argument("--size", type=float, default=_env_float(env, "GRID_SIZE"),
                    help="Base quantity per order.")
    ap.add_argument("--step-ticks", type=int, default=int(env.get("GRID_STEP_TICKS", "0")),
                    help="Centre the range on mid with this step when min/max are unset.")
    ap.add_argument("--strategy", default=env.get("GRID_STRATEGY", Strategy.ANCHORED.value),
                    choices=[s.value for s in Strategy])
    ap.add_argument("--interval-ms", type=int,
                    default=int(env.get("BOT_MS", str(DEFAULT_INTERVAL_MS))))
    ap.add_argument("--dry-run", action="store_true", default=env.get("DRY_RUN") == "1")
    ap.add_argument("--once", action="store_true", help="Run a single cycle and exit.")
    ap.add_argument("--log-level", default=env.get("LOG_LEVEL", "INFO"))
    return ap


def _print_summary(summary: CycleSummary) -> None:
    print(json.dumps(summary.to_dict()), flush=True)


async def _resolve_range(args: argparse.Namespace, gateway: PaperGateway) -> None:
    """Fill a missing min/max from mid price and step ticks."""
    if args.min_price and args.max_price:
        return
    if args.step_ticks <= 0:
        raise DeepgridError(
            "set --min/--max (GRID_MIN/GRID_MAX) or --step-ticks (GRID_STEP_TICKS)"
        )
    logger.info(
        "Auto-calculating grid from mid price (step_ticks=%d, grids=%d)",
        args.step_ticks, args.grids,
    )
    try:
        mid = await gateway.get_mid_price(args.pool)
        book = await gateway.get_book_params(args.pool)
    except Exception as e:
        raise GatewayReadError(f"market read for auto range failed: {e}") from e
    lo, hi = auto_range(mid, book.tick_size, args.grids, args.step_ticks)
    args.min_price = args.min_price or lo
    args.max_price = args.max_price or hi


async def run(args: argparse.Namespace) -> int:
    if not args.grids:
        logger.error("--grids (GRID_GRIDS or GRID_LEVELS) is required")
        return 2
    if not args.size:
        logger.error("--size (GRID_SIZE) is required")
        return 2

    gateway = PaperGateway(market=DeepbookIndexer(network=args.network))
    try:
        await _resolve_range(args, gateway)
        config = GridConfig(
            min_price=args.min_price,
            max_price=args.max_price,
            level_count=args.grids,
            order_size=args.size,
        )
        driver = ReconciliationDriver(
            gateway,
            args.account,
            args.pool,
            config,
            strategy=args.strategy,
            dry_run=args.dry_run,
        )
        await driver.preflight()
        driver.on("cycle", _print_summary)

        logger.info(
            "network=%s pool=%s grid=[%s, %s] grids=%d size=%s interval=%dms dry_run=%s",
            args.network, args.pool, config.min_price, config.max_price,
            config.level_count, config.order_size, args.interval_ms, args.dry_run,
        )
        loop = GridLoop(driver, interval_ms=args.interval_ms)
        await loop.run_async(max_cycles=1 if args.once else None)
    except DeepgridError as e:
        logger.error("%s", e)
        return 1
    finally:
        await gateway.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
