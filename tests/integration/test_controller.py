"""
Integration tests for a strategy controller trading against the paper exchange.
"""

import asyncio
import itertools
import shutil
import tempfile

import pytest

from dip_accumulator.config.models import DipLevel, RangeProfitConfig, SimpleProfitConfig, StrategyConfig
from dip_accumulator.errors import AlreadyActiveError, InvariantViolation, NetworkError, SlippageError
from dip_accumulator.events import RecordingObserver
from dip_accumulator.execution import ManualPriceFeed, PaperExchange, TradeGateway
from dip_accumulator.models import StrategyState, StrategyStatus, Wallet
from dip_accumulator.persistence import JsonStrategyStore
from dip_accumulator.strategy_engine import StrategyController


WALLET = Wallet(address="0xWALLET", label="test")


def make_config(**overrides) -> StrategyConfig:
    values = dict(
        id="ctl-test",
        base_token="WLD",
        target_token="TKN",
        levels=[
            DipLevel(level=1, threshold_pct=5, buy_amount_base=10),
            DipLevel(level=2, threshold_pct=10, buy_amount_base=20),
        ],
        profit=SimpleProfitConfig(target_pct=5),
        poll_interval_ms=10,
    )
    values.update(overrides)
    return StrategyConfig(**values)


class Harness:
    """Controller wired to a manual price feed, paper exchange and temp store."""

    def __init__(self, state_dir: str, config: StrategyConfig):
        self.feed = ManualPriceFeed()
        self.exchange = PaperExchange(self.feed)
        self.gateway = TradeGateway(self.exchange, self.feed)
        self.store = JsonStrategyStore(state_dir)
        self.observer = RecordingObserver()
        ticks = itertools.count(step=1000)
        self.controller = StrategyController(
            StrategyState(config=config), self.gateway, self.store,
            observer=self.observer, clock=lambda: next(ticks),
        )

    @property
    def state(self) -> StrategyState:
        return self.controller.state

    def run_prices(self, prices):
        """Activate if needed and run one tick per price."""
        async def scenario():
            if not self.controller.is_active:
                self.controller.activate(WALLET)
            results = []
            for price in prices:
                self.feed.set_price("TKN", price)
                results.append(await self.controller.run_tick())
            return results

        return asyncio.run(scenario())


class TestStrategyController:
    """Test the controller tick and lifecycle."""

    @pytest.fixture
    def temp_state_dir(self):
        """Create a temporary state directory for testing."""
        temp_dir = tempfile.mkdtemp()
        yield temp_dir
        shutil.rmtree(temp_dir)

    def test_dip_buy_then_profit_exit(self, temp_state_dir):
        """Test a full cycle: buy the dip, sell at target, start the next cycle."""
        harness = Harness(temp_state_dir, make_config())

        results = harness.run_prices([1.00, 0.98, 0.94, 0.96, 0.987])

        assert all(results)
        state = harness.state
        assert state.completed_cycles == 1
        assert state.position.cycle == 2
        assert state.position.is_empty
        assert state.position.executed_levels == []
        assert state.successful_trades == 2
        assert state.total_realized_pnl == pytest.approx(10 / 0.94 * 0.987 - 10)
        assert [trade.side for trade in state.trade_history] == ["buy", "sell"]
        assert [fill["side"] for fill in harness.exchange.fills] == ["buy", "sell"]
        assert harness.observer.kinds() == ["started", "buy", "sell", "cycle_closed"]

    def test_state_is_persisted_every_tick(self, temp_state_dir):
        """Test that the position survives in the store after a buy."""
        harness = Harness(temp_state_dir, make_config())

        harness.run_prices([1.00, 0.94])

        loaded = harness.store.load("ctl-test")
        assert loaded.status == StrategyStatus.ACTIVE
        assert loaded.position.executed_levels == [1]
        assert loaded.position.average_cost_basis == pytest.approx(0.94)
        assert loaded.wallet_address == "0xWALLET"

    def test_failed_buy_is_retried(self, temp_state_dir):
        """Test that a trading error leaves the level pending for the next tick."""
        harness = Harness(temp_state_dir, make_config())
        harness.run_prices([1.00])
        harness.exchange.fail_next(SlippageError("price moved"))

        harness.run_prices([0.94])

        assert harness.state.status == StrategyStatus.ACTIVE
        assert harness.state.position.executed_levels == []
        assert harness.state.failed_trades == 1
        assert "SlippageError" in harness.state.last_error
        assert "trade_failed" in harness.observer.kinds()

        harness.run_prices([0.94])

        assert harness.state.position.executed_levels == [1]
        assert harness.state.successful_trades == 1

    def test_price_unavailable_skips_tick(self, temp_state_dir):
        """Test that a price feed failure skips the tick without trading."""
        harness = Harness(temp_state_dir, make_config())
        harness.feed.fail_next(NetworkError("rpc down"))

        results = harness.run_prices([0.5])

        assert results == [False]
        assert harness.state.status == StrategyStatus.ACTIVE
        assert harness.exchange.fills == []
        assert "price_unavailable" in harness.observer.kinds()
        assert len(harness.controller.tracker) == 0

    def test_invariant_violation_moves_to_error(self, temp_state_dir, monkeypatch):
        """Test that bookkeeping corruption stops the strategy in the error state."""
        harness = Harness(temp_state_dir, make_config())

        def broken_apply_buy(*args, **kwargs):
            raise InvariantViolation("corrupted")

        monkeypatch.setattr(harness.controller.accumulation, "apply_buy", broken_apply_buy)

        results = harness.run_prices([1.00, 0.9, 0.8])

        assert results == [True, False, False]
        assert harness.state.status == StrategyStatus.ERROR
        assert "InvariantViolation" in harness.state.last_error
        assert harness.observer.kinds()[-1] == "error"
        assert harness.store.load("ctl-test").status == StrategyStatus.ERROR

    def test_max_cycles_auto_stop(self, temp_state_dir):
        """Test that the controller stops itself after the configured cycles."""
        harness = Harness(temp_state_dir, make_config(max_cycles=1))

        harness.run_prices([1.00, 0.94, 0.99])

        assert harness.state.completed_cycles == 1
        assert harness.state.status == StrategyStatus.STOPPED
        assert harness.observer.kinds()[-1] == "stopped"
        assert asyncio.run(harness.controller.run_tick()) is False

    def test_range_exit_through_exchange(self, temp_state_dir):
        """Test a range liquidation selling one step per threshold."""
        config = make_config(profit=RangeProfitConfig(min_pct=5, max_pct=15, steps=3))
        harness = Harness(temp_state_dir, config)

        harness.run_prices([1.00, 0.90, 0.95, 1.00, 1.04])

        sells = [fill for fill in harness.exchange.fills if fill["side"] == "sell"]
        assert len(sells) == 3
        assert harness.state.completed_cycles == 1
        closed = [trade for trade in harness.state.trade_history if trade.side == "sell"]
        assert [trade.step for trade in closed] == [1, 2, 3]
        assert harness.state.total_realized_pnl > 0

    def test_activate_twice_raises(self, temp_state_dir):
        """Test that an active controller cannot be started again."""
        harness = Harness(temp_state_dir, make_config())
        harness.controller.activate(WALLET)

        with pytest.raises(AlreadyActiveError):
            harness.controller.activate(WALLET)

    def test_start_and_stop_loop(self, temp_state_dir):
        """Test that the polling loop ticks until stopped."""
        harness = Harness(temp_state_dir, make_config())
        harness.feed.set_price("TKN", 1.0)

        async def scenario():
            await harness.controller.start(WALLET)
            await asyncio.sleep(0.1)
            await harness.controller.stop()

        asyncio.run(scenario())

        assert harness.state.status == StrategyStatus.STOPPED
        assert harness.feed.calls >= 2
        assert harness.observer.kinds()[0] == "started"
        assert harness.observer.kinds()[-1] == "stopped"

    def test_observer_failure_does_not_break_tick(self, temp_state_dir):
        """Test that a raising observer is logged and ignored."""
        harness = Harness(temp_state_dir, make_config())

        class BrokenObserver(RecordingObserver):
            def notify(self, event):
                raise RuntimeError("observer down")

        harness.controller.observer = BrokenObserver()

        results = harness.run_prices([1.00, 0.94])

        assert results == [True, True]
        assert harness.state.position.executed_levels == [1]
