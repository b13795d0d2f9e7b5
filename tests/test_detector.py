"""Tests for strategy.detector: spread gate, round trips and ladder sizing."""

import pytest

from pricing.amm_math import VirtualReserves
from strategy.detector import ArbDetector, VenueModel, round_trip
from strategy.opportunity import ArbOpportunity, Direction

E18 = 10**18


def _venue(name, native, tokens, fee_pips=0):
    reserves = VirtualReserves(
        reserve_base=float(native),
        reserve_quote=float(tokens),
        liquidity=(float(native) * float(tokens)) ** 0.5,
        fee_pips=fee_pips,
    )
    return VenueModel(name=name, reserves=reserves)


class TestSpreadGate:
    def test_spread_bps(self):
        assert ArbDetector.spread_bps(110.0, 100.0) == 1000
        assert ArbDetector.spread_bps(90.0, 100.0) == -1000

    def test_spread_rejects_zero_reference(self):
        with pytest.raises(ValueError):
            ArbDetector.spread_bps(1.0, 0.0)

    def test_pool_expensive_buys_on_curve(self):
        opp = ArbDetector(min_profit_bps=50).detect(110.0, 100.0, 50, 50, target="MEME")
        assert opp is not None
        assert opp.spread_bps == 1000
        assert opp.direction is Direction.BUY_B_SELL_A
        assert opp.target == "MEME"
        assert not opp.is_sized

    def test_pool_cheap_buys_on_pool(self):
        opp = ArbDetector(min_profit_bps=50).detect(100.0, 110.0, 50, 50)
        assert opp is not None
        assert opp.direction is Direction.BUY_A_SELL_B
        assert opp.direction.buys_on_a

    def test_fees_eat_small_spread(self):
        assert ArbDetector(min_profit_bps=50).detect(101.0, 100.0, 50, 50) is None

    def test_threshold_override(self):
        detector = ArbDetector(min_profit_bps=50)
        assert detector.detect(101.4, 100.0, 50, 50) is None
        assert detector.detect(101.4, 100.0, 50, 50, min_profit_bps=0) is not None

    def test_equal_prices_never_trade(self):
        assert ArbDetector(min_profit_bps=0).detect(1.0, 1.0, 0, 0) is None

    def test_non_positive_prices_ignored(self):
        assert ArbDetector().detect(0.0, 1.0, 0, 0) is None


class TestRoundTrip:
    def test_round_trip_profit(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        trip = round_trip(Direction.BUY_B_SELL_A, pool, curve, E18)
        assert trip.tokens == pytest.approx(E18, rel=1e-5)
        assert trip.amount_back == pytest.approx(1.1 * E18, rel=1e-5)
        assert trip.profit == pytest.approx(0.1 * E18, rel=1e-3)

    def test_gas_reduces_profit(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        trip = round_trip(Direction.BUY_B_SELL_A, pool, curve, E18, gas_cost=1e17)
        assert trip.profit == pytest.approx(0.0, abs=1e15)

    def test_wrong_direction_loses(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        assert round_trip(Direction.BUY_A_SELL_B, pool, curve, E18).profit < 0


class TestSizing:
    def test_picks_most_profitable_ladder_size(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        detector = ArbDetector(min_profit_bps=50, size_ladder=[E18, 10**22, 10**24])

        opp = detector.evaluate(pool, curve, target="MEME")

        assert isinstance(opp, ArbOpportunity)
        assert opp.direction is Direction.BUY_B_SELL_A
        # 10**24 drains half the curve and loses; 10**22 beats 10**18.
        assert opp.trade_amount == 10**22
        assert opp.expected_profit > 0

    def test_ties_prefer_larger_size(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        detector = ArbDetector(size_ladder=[E18, E18])
        trip = detector.best_size(Direction.BUY_B_SELL_A, pool, curve)
        assert trip is not None and trip.amount_in == E18

    def test_gas_can_kill_every_size(self):
        pool = _venue("pool", 1.1e24, 1e24)
        curve = _venue("curve", 1e24, 1e24)
        detector = ArbDetector(size_ladder=[E18, 10**20])
        assert detector.evaluate(pool, curve, gas_cost=1e30) is None

    def test_fees_are_part_of_the_gate(self):
        pool = _venue("pool", 1.01e24, 1e24, fee_pips=10_000)
        curve = _venue("curve", 1e24, 1e24, fee_pips=10_000)
        assert pool.fee_bps == 100
        assert ArbDetector(min_profit_bps=50).evaluate(pool, curve) is None

    def test_opportunity_keeps_detection_id(self):
        pool = _venue("pool", 1e24, 1e24)
        curve = _venue("curve", 1.2e24, 1e24)
        opp = ArbDetector(size_ladder=[E18]).evaluate(pool, curve)
        assert opp is not None
        assert opp.direction is Direction.BUY_A_SELL_B
        assert len(opp.opportunity_id) == 12
        assert opp.age_seconds() >= 0
