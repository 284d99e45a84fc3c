"""
Integration tests for the strategy registry control surface.
"""

import asyncio
import shutil
import tempfile

import pytest

from dip_accumulator.config.models import DipLevel, SimpleProfitConfig, StrategyConfig
from dip_accumulator.errors import AlreadyActiveError, ConfigurationError, InvariantViolation, StrategyNotFoundError
from dip_accumulator.events import RecordingObserver
from dip_accumulator.execution import ManualPriceFeed, PaperExchange, TradeGateway
from dip_accumulator.models import StrategyState, StrategyStatus, Wallet
from dip_accumulator.persistence import JsonStrategyStore
from dip_accumulator.strategy_engine import StrategyRegistry


WALLET = Wallet(address="0xWALLET")


def make_config(strategy_id: str, target_token: str = "TKN", **overrides) -> StrategyConfig:
    values = dict(
        id=strategy_id,
        base_token="WLD",
        target_token=target_token,
        levels=[DipLevel(level=1, threshold_pct=5, buy_amount_base=10)],
        profit=SimpleProfitConfig(target_pct=5),
        poll_interval_ms=10,
    )
    values.update(overrides)
    return StrategyConfig(**values)


class TestStrategyRegistry:
    """Test cases for StrategyRegistry."""

    @pytest.fixture
    def temp_state_dir(self):
        """Create a temporary state directory for testing."""
        temp_dir = tempfile.mkdtemp()
        yield temp_dir
        shutil.rmtree(temp_dir)

    def make_registry(self, state_dir: str, prices=None):
        feed = ManualPriceFeed(prices or {"TKN": 1.0, "OTHER": 2.0})
        exchange = PaperExchange(feed)
        gateway = TradeGateway(exchange, feed)
        store = JsonStrategyStore(state_dir)
        return StrategyRegistry(gateway, store, observer=RecordingObserver()), feed, exchange

    def test_create_and_list(self, temp_state_dir):
        """Test that created strategies are listed and persisted."""
        registry, _, _ = self.make_registry(temp_state_dir)

        registry.create(make_config("alpha", name="Alpha"))
        registry.create(make_config("beta", target_symbol="BETA"))

        summaries = {summary.id: summary for summary in registry.list()}
        assert set(summaries) == {"alpha", "beta"}
        assert summaries["alpha"].name == "Alpha"
        assert summaries["beta"].target_symbol == "BETA"
        assert summaries["alpha"].status == StrategyStatus.CREATED
        assert summaries["alpha"].average_cost_basis is None
        assert registry.store.load("alpha") is not None

    def test_duplicate_id_rejected(self, temp_state_dir):
        """Test that two strategies cannot share an id."""
        registry, _, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))

        with pytest.raises(ConfigurationError):
            registry.create(make_config("alpha"))

    def test_unknown_strategy(self, temp_state_dir):
        """Test that unknown ids raise StrategyNotFoundError."""
        registry, _, _ = self.make_registry(temp_state_dir)

        with pytest.raises(StrategyNotFoundError):
            registry.get_position("missing")
        with pytest.raises(StrategyNotFoundError):
            asyncio.run(registry.start("missing", WALLET))

    def test_start_twice_raises(self, temp_state_dir):
        """Test that starting an active strategy raises AlreadyActiveError."""
        registry, _, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))

        async def scenario():
            await registry.start("alpha", WALLET)
            try:
                with pytest.raises(AlreadyActiveError):
                    await registry.start("alpha", WALLET)
            finally:
                await registry.stop("alpha")

        asyncio.run(scenario())

        assert registry.get_state("alpha").status == StrategyStatus.STOPPED

    def test_start_all_isolates_failures(self, temp_state_dir):
        """Test that one strategy failing to start does not block the others."""
        registry, _, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))
        registry.create(make_config("beta", target_token="OTHER"))

        async def scenario():
            await registry.start("alpha", WALLET)
            result = await registry.start_all(WALLET)
            stopped = await registry.stop_all()
            return result, stopped

        result, stopped = asyncio.run(scenario())

        assert result.succeeded == ["beta"]
        assert "AlreadyActiveError" in result.failed["alpha"]
        assert not result.all_succeeded
        assert sorted(stopped.succeeded) == ["alpha", "beta"]
        assert stopped.all_succeeded
        assert not registry.is_active("alpha")
        assert not registry.is_active("beta")

    def test_strategies_trade_concurrently(self, temp_state_dir):
        """Test that two running strategies both buy their own dips."""
        registry, feed, exchange = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))
        registry.create(make_config("beta", target_token="OTHER"))

        async def scenario():
            await registry.start_all(WALLET)
            await asyncio.sleep(0.05)
            feed.set_price("TKN", 0.9)
            feed.set_price("OTHER", 1.8)
            await asyncio.sleep(0.1)
            await registry.stop_all()

        asyncio.run(scenario())

        assert registry.get_position("alpha").executed_levels == [1]
        assert registry.get_position("beta").executed_levels == [1]
        assert exchange.max_in_flight["0xWALLET"] == 1

    def test_restart_after_error(self, temp_state_dir, monkeypatch):
        """Test that an errored strategy can be restarted manually."""
        registry, feed, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))

        async def fail_and_restart():
            controller = await registry.start("alpha", WALLET)

            def broken_apply_buy(*args, **kwargs):
                raise InvariantViolation("corrupted")

            monkeypatch.setattr(controller.accumulation, "apply_buy", broken_apply_buy)
            await asyncio.sleep(0.03)
            feed.set_price("TKN", 0.9)
            await controller.wait()
            errored = registry.get_state("alpha").status

            restarted = await registry.start("alpha", WALLET)
            active = registry.is_active("alpha")
            await registry.stop("alpha")
            return errored, active, restarted is not controller

        errored, active, replaced = asyncio.run(fail_and_restart())

        assert errored == StrategyStatus.ERROR
        assert active
        assert replaced
        assert registry.get_state("alpha").status == StrategyStatus.STOPPED

    def test_delete(self, temp_state_dir):
        """Test that delete stops and forgets a strategy."""
        registry, _, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))

        async def scenario():
            await registry.start("alpha", WALLET)
            await registry.delete("alpha")

        asyncio.run(scenario())

        assert registry.list() == []
        assert registry.store.load("alpha") is None
        with pytest.raises(StrategyNotFoundError):
            registry.get_state("alpha")

    def test_reload_marks_active_strategies_stopped(self, temp_state_dir):
        """Test that strategies left active by a crash load as stopped."""
        store = JsonStrategyStore(temp_state_dir)
        store.save(StrategyState(config=make_config("alpha"), status=StrategyStatus.ACTIVE))
        store.save(StrategyState(config=make_config("beta"), status=StrategyStatus.ERROR))

        registry, _, _ = self.make_registry(temp_state_dir)

        assert registry.get_state("alpha").status == StrategyStatus.STOPPED
        assert registry.get_state("beta").status == StrategyStatus.ERROR
        assert store.load("alpha").status == StrategyStatus.STOPPED

    def test_statistics(self, temp_state_dir):
        """Test that registry statistics cover every strategy."""
        registry, _, _ = self.make_registry(temp_state_dir)
        registry.create(make_config("alpha"))
        registry.create(make_config("beta"))

        stats = registry.statistics()

        assert stats.total_strategies == 2
        assert stats.stopped_strategies == 2
        assert stats.best_strategy_id is None
