"""Tests for the seed, fill-replacement and full-resync planners."""

import random

import pytest

from deepgrid.grid.errors import UnknownLevelWarning
from deepgrid.grid.geometry import build_levels
from deepgrid.grid.planner import (
    desired_ladder,
    detect_closed,
    open_keys,
    plan_cycle,
    plan_fill_replacements,
    plan_full_resync,
    plan_seed,
)
from deepgrid.grid.types import (
    BookParams,
    DesiredOrder,
    GridConfig,
    OpenOrderSnapshot,
    Side,
    Strategy,
)

GEO = build_levels(
    GridConfig(min_price=0.94, max_price=0.97, level_count=6, order_size=1.0),
    BookParams(tick_size=0.0001, lot_size=0.1, min_size=1.0),
)
P = [lv.price_micro for lv in GEO.levels]  # 940_000 .. 970_000


def _snap(oid: str, side: Side, price_micro: int) -> OpenOrderSnapshot:
    return OpenOrderSnapshot(order_id=oid, side=side, price_micro=price_micro, quantity=1.0)


def _book(*orders: OpenOrderSnapshot) -> dict:
    return {o.order_id: o for o in orders}


def _seeded_book(pivot: int = 3) -> dict:
    return _book(
        *(_snap(f"o{d.price_micro}", d.side, d.price_micro) for d in desired_ladder(GEO, pivot))
    )


class TestSeed:
    def test_reference_split(self):
        orders = plan_seed(GEO, pivot=3)
        buys = [o for o in orders if o.side == Side.BUY]
        sells = [o for o in orders if o.side == Side.SELL]

        assert len(orders) == 7
        assert [o.price_micro for o in buys] == P[:4]
        assert [o.price_micro for o in sells] == P[4:]

    def test_skips_keys_already_resting(self):
        existing = {(Side.BUY, P[0]), (Side.SELL, P[6])}
        orders = plan_seed(GEO, pivot=3, existing=existing)
        assert len(orders) == 5
        assert all(o.key not in existing for o in orders)

    def test_no_duplicate_keys(self):
        orders = plan_seed(GEO, pivot=0)
        assert len({o.key for o in orders}) == len(orders)


class TestDetectClosed:
    def test_missing_ids_are_closed(self):
        a = _snap("a", Side.BUY, P[2])
        b = _snap("b", Side.SELL, P[5])
        closed = detect_closed(_book(a, b), _book(b))
        assert closed == [a]

    def test_new_orders_are_not_closed(self):
        a = _snap("a", Side.BUY, P[2])
        c = _snap("c", Side.BUY, P[1])
        assert detect_closed(_book(a), _book(a, c)) == []


class TestFillReplacement:
    def test_filled_buy_places_sell_one_level_up(self):
        buy = _snap("a", Side.BUY, P[2])
        sell = _snap("b", Side.SELL, P[5])
        closed = detect_closed(_book(buy, sell), _book(sell))

        orders = plan_fill_replacements(closed, GEO, [sell])
        assert orders == [DesiredOrder(Side.SELL, 955_000)]

    def test_target_already_resting_is_skipped(self):
        buy = _snap("a", Side.BUY, P[2])
        sell = _snap("b", Side.SELL, P[3])
        orders = plan_fill_replacements([buy], GEO, [sell])
        assert orders == []

    def test_filled_sell_places_buy_one_level_down(self):
        sell = _snap("b", Side.SELL, P[5])
        orders = plan_fill_replacements([sell], GEO, [])
        assert orders == [DesiredOrder(Side.BUY, P[4])]

    def test_top_sell_and_bottom_buy_have_no_replacement(self):
        # a BUY resting at the top line or a SELL at the bottom line has
        # nowhere to go: the target index is off the ladder
        top_buy = _snap("t", Side.BUY, P[6])
        bottom_sell = _snap("s", Side.SELL, P[0])
        assert plan_fill_replacements([top_buy, bottom_sell], GEO, []) == []

    def test_top_sell_fill_replaces_below(self):
        top_sell = _snap("t", Side.SELL, P[6])
        assert plan_fill_replacements([top_sell], GEO, []) == [
            DesiredOrder(Side.BUY, P[5])
        ]

    def test_two_fills_same_target_produce_one_order(self):
        buy = _snap("a", Side.BUY, P[2])
        sell = _snap("b", Side.SELL, P[4])
        # BUY@2 -> SELL@3 and SELL@4 -> BUY@3: different keys, both placed
        assert len(plan_fill_replacements([buy, sell], GEO, [])) == 2

        dup_a = _snap("a", Side.BUY, P[2])
        dup_b = _snap("b", Side.BUY, P[2])
        orders = plan_fill_replacements([dup_a, dup_b], GEO, [])
        assert orders == [DesiredOrder(Side.SELL, P[3])]

    def test_unknown_price_is_skipped_with_warning(self):
        stray = _snap("x", Side.BUY, 951_234)
        buy = _snap("a", Side.BUY, P[1])
        with pytest.warns(UnknownLevelWarning):
            orders = plan_fill_replacements([stray, buy], GEO, [])
        assert orders == [DesiredOrder(Side.SELL, P[2])]


class TestFullResync:
    def test_empty_book_places_whole_ladder(self):
        cancels, places = plan_full_resync(GEO, 3, [])
        assert cancels == []
        assert places == desired_ladder(GEO, 3)

    def test_pivot_move_flips_levels(self):
        resting = list(_seeded_book(pivot=3).values())
        cancels, places = plan_full_resync(GEO, 4, resting)
        assert [(o.side, o.price_micro) for o in cancels] == [(Side.SELL, P[4])]
        assert places == [DesiredOrder(Side.BUY, P[4])]

    def test_duplicates_cancelled(self):
        a = _snap("a", Side.BUY, P[0])
        b = _snap("b", Side.BUY, P[0])
        cancels, _ = plan_full_resync(GEO, 3, [a, b])
        assert cancels == [b]

    def test_convergence(self):
        rng = random.Random(7)
        for _ in range(50):
            resting = [
                _snap(f"r{i}", rng.choice([Side.BUY, Side.SELL]), rng.choice(P + [951_000]))
                for i in range(rng.randint(0, 12))
            ]
            pivot = rng.randint(0, 6)
            cancels, places = plan_full_resync(GEO, pivot, resting)

            cancelled_ids = {o.order_id for o in cancels}
            remaining = [o.key for o in resting if o.order_id not in cancelled_ids]
            final = remaining + [p.key for p in places]

            assert sorted(final) == sorted(d.key for d in desired_ladder(GEO, pivot))


class TestPlanCycle:
    def test_no_previous_snapshot_seeds(self):
        plan = plan_cycle(Strategy.ANCHORED, GEO, 955_000, None, {})
        assert len(plan.placements) == 7
        assert plan.cancellations == ()

    def test_empty_previous_snapshot_seeds_idempotently(self):
        current = _seeded_book()
        plan = plan_cycle(Strategy.ANCHORED, GEO, 955_000, {}, current)
        assert plan.is_empty

    def test_full_resync_seed_never_cancels(self):
        stray = _snap("x", Side.BUY, 951_000)
        plan = plan_cycle(Strategy.FULL_RESYNC, GEO, 955_000, None, _book(stray))
        assert plan.cancellations == ()
        assert len(plan.placements) == 7

    def test_anchored_idempotent_without_fills(self):
        book = _seeded_book()
        plan = plan_cycle(Strategy.ANCHORED, GEO, 967_000, book, dict(book))
        assert plan.is_empty

    def test_anchored_ignores_mid_moves(self):
        book = _seeded_book()
        plan = plan_cycle(Strategy.ANCHORED, GEO, 941_000, book, dict(book))
        assert plan.is_empty

    def test_anchored_scenario(self):
        buy = _snap("a", Side.BUY, P[2])
        sell = _snap("b", Side.SELL, P[5])
        plan = plan_cycle(
            Strategy.ANCHORED, GEO, 955_000, _book(buy, sell), _book(sell)
        )
        assert plan.placements == (DesiredOrder(Side.SELL, 955_000),)
        assert plan.cancellations == ()
        assert plan.closed == (buy,)

    def test_full_resync_repivots(self):
        book = _seeded_book(pivot=3)
        plan = plan_cycle(Strategy.FULL_RESYNC, GEO, 962_000, book, dict(book))
        assert [o.key for o in plan.cancellations] == [(Side.SELL, P[4])]
        assert plan.placements == (DesiredOrder(Side.BUY, P[4]),)

    def test_open_keys(self):
        a = _snap("a", Side.BUY, P[0])
        assert open_keys([a]) == {(Side.BUY, P[0])}
