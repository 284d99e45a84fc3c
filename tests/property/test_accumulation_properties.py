"""
Property-based tests for accumulation bookkeeping and the average-price rule.
"""

import math

from hypothesis import given, settings, strategies as st

from dip_accumulator.config.models import DipLevel, StrategyConfig
from dip_accumulator.models import Position
from dip_accumulator.price_monitor import PriceSample, RollingHighTracker
from dip_accumulator.strategy_engine import tick


prices = st.floats(min_value=0.01, max_value=100.0, allow_nan=False, allow_infinity=False)


def ladder_config(thresholds, amounts) -> StrategyConfig:
    levels = [
        DipLevel(level=i + 1, threshold_pct=threshold, buy_amount_base=amount)
        for i, (threshold, amount) in enumerate(zip(thresholds, amounts))
    ]
    return StrategyConfig(id="prop", base_token="WLD", target_token="TKN", levels=levels)


ladders = st.lists(
    st.floats(min_value=1.0, max_value=90.0, allow_nan=False),
    min_size=1,
    max_size=5,
    unique=True,
).map(sorted)


class TestAccumulationProperties:
    """Property-based tests for dip accumulation."""

    @settings(max_examples=75, deadline=None)
    @given(
        thresholds=ladders,
        amount=st.floats(min_value=0.01, max_value=1000.0, allow_nan=False),
        path=st.lists(prices, min_size=1, max_size=40),
    )
    def test_cost_basis_is_ratio_of_totals(self, thresholds, amount, path):
        """
        After any sequence of ticks the average cost basis equals the base
        invested over the target held, and matches the sum of the buy fills.
        """
        config = ladder_config(thresholds, [amount * (i + 1) for i in range(len(thresholds))])
        tracker = RollingHighTracker(config.dip_timeframe_ms)
        position = Position()
        spent = 0.0
        bought = 0.0

        for i, price in enumerate(path):
            sample = PriceSample(timestamp_ms=i * 1000, price=price)
            tracker.add(sample)
            result = tick(config, position, sample, tracker.get_high())
            position = result.position
            if position.is_closed:
                break
            for action in result.actions:
                if action.side == "buy":
                    spent += action.amount_base
                    bought += action.amount_target

            if position.is_empty:
                assert position.average_cost_basis is None
            else:
                assert position.average_cost_basis == position.total_base_invested / position.total_target_held
                assert math.isclose(position.total_base_invested, spent, rel_tol=1e-9)
                assert math.isclose(position.total_target_held, bought, rel_tol=1e-9)

    @settings(max_examples=75, deadline=None)
    @given(
        thresholds=ladders,
        path=st.lists(prices, min_size=1, max_size=40),
    )
    def test_buys_never_raise_the_average(self, thresholds, path):
        """
        Every buy after the first happens at or below the average cost basis
        held before it, so the average never increases within a cycle.
        """
        config = ladder_config(thresholds, [1.0] * len(thresholds))
        tracker = RollingHighTracker(config.dip_timeframe_ms)
        position = Position()

        for i, price in enumerate(path):
            sample = PriceSample(timestamp_ms=i * 1000, price=price)
            tracker.add(sample)
            average_before = position.average_cost_basis
            result = tick(config, position, sample, tracker.get_high())

            buys = [action for action in result.actions if action.side == "buy"]
            assert len(buys) <= 1
            if buys and average_before is not None:
                assert buys[0].price <= average_before
                assert result.position.average_cost_basis <= average_before * (1 + 1e-12)

            position = result.position
            if position.is_closed:
                position = position.next_cycle()

    @settings(max_examples=50, deadline=None)
    @given(thresholds=ladders, path=st.lists(prices, min_size=1, max_size=40))
    def test_each_level_fires_at_most_once_per_cycle(self, thresholds, path):
        """No level index appears twice among the buys of one cycle."""
        config = ladder_config(thresholds, [1.0] * len(thresholds))
        tracker = RollingHighTracker(config.dip_timeframe_ms)
        position = Position()

        for i, price in enumerate(path):
            sample = PriceSample(timestamp_ms=i * 1000, price=price)
            tracker.add(sample)
            position = tick(config, position, sample, tracker.get_high()).position

            levels = [trade.level for trade in position.trades if trade.side == "buy"]
            assert len(levels) == len(set(levels))
            assert sorted(levels) == sorted(position.executed_levels)

            if position.is_closed:
                position = position.next_cycle()
