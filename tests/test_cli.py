"""Tests for the command-line runner's option handling."""

from unittest.mock import patch

import aiohttp
import pytest

from deepgrid.cli import _resolve_range, build_parser, run
from deepgrid.gateway.paper import PaperGateway
from deepgrid.grid.errors import DeepgridError, GatewayReadError
from deepgrid.grid.runner import DEFAULT_INTERVAL_MS
from deepgrid.grid.types import BookParams

BOOK = BookParams(tick_size=0.0001, lot_size=0.1, min_size=1.0)


class TestParser:
    def test_defaults_without_env(self):
        args = build_parser({}).parse_args([])
        assert args.network == "testnet"
        assert args.pool == "SUI_DBUSDC"
        assert args.min_price is None
        assert args.grids is None
        assert args.strategy == "anchored"
        assert args.interval_ms == DEFAULT_INTERVAL_MS
        assert not args.dry_run

    def test_env_defaults(self):
        env = {
            "SUI_ENV": "mainnet",
            "DEEPBOOK_POOL_KEY": "DEEP_USDC",
            "GRID_MIN": "0.94",
            "GRID_MAX": "0.97",
            "GRID_LEVELS": "6",
            "GRID_SIZE": "2.5",
            "GRID_STRATEGY": "full-resync",
            "BOT_MS": "2000",
            "DRY_RUN": "1",
        }
        args = build_parser(env).parse_args([])
        assert args.network == "mainnet"
        assert args.pool == "DEEP_USDC"
        assert (args.min_price, args.max_price) == (0.94, 0.97)
        assert args.grids == 6
        assert args.size == 2.5
        assert args.strategy == "full-resync"
        assert args.interval_ms == 2000
        assert args.dry_run

    def test_flags_override_env(self):
        args = build_parser({"GRID_GRIDS": "10"}).parse_args(["--grids", "4", "--once"])
        assert args.grids == 4
        assert args.once

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            build_parser({}).parse_args(["--strategy", "martingale"])


class TestResolveRange:
    @pytest.mark.asyncio
    async def test_explicit_range_kept(self):
        args = build_parser({}).parse_args(["--min", "1", "--max", "2", "--grids", "4"])
        await _resolve_range(args, PaperGateway(book=BOOK))
        assert (args.min_price, args.max_price) == (1.0, 2.0)

    @pytest.mark.asyncio
    async def test_auto_range_from_mid(self):
        gw = PaperGateway(book=BOOK)
        gw.set_mid_price("SUI_DBUSDC", 0.955)
        args = build_parser({}).parse_args(["--grids", "6", "--step-ticks", "50"])
        await _resolve_range(args, gw)
        assert args.min_price == pytest.approx(0.94)
        assert args.max_price == pytest.approx(0.97)

    @pytest.mark.asyncio
    async def test_market_read_failure_is_a_gateway_error(self):
        args = build_parser({}).parse_args(["--grids", "6", "--step-ticks", "50"])
        with pytest.raises(GatewayReadError, match="no mid price set"):
            await _resolve_range(args, PaperGateway(book=BOOK))

    @pytest.mark.asyncio
    async def test_no_range_and_no_step(self):
        args = build_parser({}).parse_args(["--grids", "6"])
        with pytest.raises(DeepgridError):
            await _resolve_range(args, PaperGateway(book=BOOK))


class TestRun:
    @pytest.mark.asyncio
    async def test_missing_grids(self):
        args = build_parser({}).parse_args(["--size", "1"])
        assert await run(args) == 2

    @pytest.mark.asyncio
    async def test_missing_size(self):
        args = build_parser({}).parse_args(["--grids", "6"])
        assert await run(args) == 2

    @pytest.mark.asyncio
    async def test_unreachable_market_exits_with_error_code(self):
        market = UnreachableMarket()
        args = build_parser({}).parse_args(
            ["--grids", "6", "--size", "1", "--step-ticks", "50"]
        )
        with patch("deepgrid.cli.DeepbookIndexer", return_value=market):
            assert await run(args) == 1
        assert market.closed


class UnreachableMarket:
    def __init__(self):
        self.closed = False

    async def mid_price(self, pool):
        raise aiohttp.ClientConnectionError("indexer unreachable")

    async def book_params(self, pool):
        raise ValueError(f"Unknown DeepBook pool: {pool}")

    async def close(self):
        self.closed = True
