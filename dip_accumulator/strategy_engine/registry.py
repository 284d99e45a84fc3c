"""
Registry owning strategy definitions and their running controllers.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..analysis import StrategyStatistics, calculate_statistics
from ..config.models import StrategyConfig
from ..errors import AlreadyActiveError, ConfigurationError, StrategyNotFoundError
from ..events import StrategyObserver
from ..execution.gateway import TradeGateway
from ..execution.interfaces import StrategyStore
from ..models import Position, StrategyState, StrategyStatus, StrategySummary, Wallet
from .controller import StrategyController


logger = logging.getLogger(__name__)


class BulkOperationResult(BaseModel):
    """Per-strategy outcome of a bulk start or stop."""

    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class StrategyRegistry:
    """
    Owns every strategy definition and at most one controller per strategy.

    Controllers are only created and discarded here; callers address
    strategies by id through the control surface below.
    """

    def __init__(self, gateway: TradeGateway, store: StrategyStore,
                 observer: Optional[StrategyObserver] = None,
                 clock: Optional[Callable[[], int]] = None):
        """
        Initialize the registry and load persisted strategies.

        Args:
            gateway: Shared exchange and price feed access
            store: Strategy persistence
            observer: Receives events from every controller
            clock: Millisecond clock passed to controllers
        """
        self.gateway = gateway
        self.store = store
        self.observer = observer
        self._clock = clock
        self._states: Dict[str, StrategyState] = {}
        self._controllers: Dict[str, StrategyController] = {}

        for state in store.load_all():
            if state.status == StrategyStatus.ACTIVE:
                # Left active by a previous process that did not shut down cleanly.
                logger.info(f"Strategy {state.strategy_id} was active at last shutdown, marking stopped")
                state.status = StrategyStatus.STOPPED
                store.save(state)
            self._states[state.strategy_id] = state

        logger.info(f"StrategyRegistry initialized with {len(self._states)} strategies")

    def create(self, config: StrategyConfig) -> StrategyState:
        """
        Register a new strategy in the stopped-before-start state.

        Raises:
            ConfigurationError: If a strategy with the same id exists
        """
        if config.id in self._states:
            raise ConfigurationError(f"Strategy {config.id} already exists")

        state = StrategyState(config=config)
        self._states[config.id] = state
        if not self.store.save(state):
            logger.error(f"Failed to persist new strategy {config.id}")

        levels = " -> ".join(f"{level.threshold_pct:g}%/{level.buy_amount_base:g}" for level in config.levels)
        logger.info(f"Created strategy {config.id} ({config.display_name}), levels {levels}")
        return state

    async def delete(self, strategy_id: str) -> None:
        """Stop the strategy if needed and remove it."""
        self.get_state(strategy_id)
        await self.stop(strategy_id)
        self._controllers.pop(strategy_id, None)
        del self._states[strategy_id]
        self.store.delete(strategy_id)
        logger.info(f"Deleted strategy {strategy_id}")

    def get_state(self, strategy_id: str) -> StrategyState:
        try:
            return self._states[strategy_id]
        except KeyError:
            raise StrategyNotFoundError(strategy_id) from None

    def get_controller(self, strategy_id: str) -> Optional[StrategyController]:
        return self._controllers.get(strategy_id)

    def is_active(self, strategy_id: str) -> bool:
        controller = self._controllers.get(strategy_id)
        return controller is not None and controller.is_active

    async def start(self, strategy_id: str, wallet: Wallet) -> StrategyController:
        """
        Start ticking a strategy.

        A stopped or errored controller is replaced, which is how a strategy
        in the error state is restarted manually.

        Raises:
            StrategyNotFoundError: If the id is unknown
            AlreadyActiveError: If the strategy is already running
        """
        state = self.get_state(strategy_id)
        if self.is_active(strategy_id):
            raise AlreadyActiveError(strategy_id)

        controller = StrategyController(state, self.gateway, self.store, observer=self.observer, clock=self._clock)
        self._controllers[strategy_id] = controller
        await controller.start(wallet)
        return controller

    async def stop(self, strategy_id: str) -> StrategyState:
        """
        Stop a strategy, waiting for an in-flight tick to finish.

        Raises:
            StrategyNotFoundError: If the id is unknown
        """
        state = self.get_state(strategy_id)
        controller = self._controllers.get(strategy_id)
        if controller is not None:
            await controller.stop()
        return state

    async def start_all(self, wallet: Wallet, strategy_ids: Optional[Iterable[str]] = None) -> BulkOperationResult:
        """Start several strategies; one failing does not prevent the others."""
        ids = list(strategy_ids) if strategy_ids is not None else list(self._states)
        result = BulkOperationResult()
        for strategy_id in ids:
            try:
                await self.start(strategy_id, wallet)
                result.succeeded.append(strategy_id)
            except Exception as e:
                logger.error(f"Failed to start {strategy_id}: {e}")
                result.failed[strategy_id] = f"{type(e).__name__}: {e}"
        logger.info(f"Started {len(result.succeeded)}/{len(ids)} strategies")
        return result

    async def stop_all(self) -> BulkOperationResult:
        """Stop every running strategy; one failing does not prevent the others."""
        result = BulkOperationResult()
        for strategy_id, controller in list(self._controllers.items()):
            if not controller.is_active:
                continue
            try:
                await controller.stop()
                result.succeeded.append(strategy_id)
            except Exception as e:
                logger.error(f"Failed to stop {strategy_id}: {e}")
                result.failed[strategy_id] = f"{type(e).__name__}: {e}"
        logger.info(f"Stopped {len(result.succeeded)} strategies")
        return result

    def list(self) -> List[StrategySummary]:
        """Summaries of every registered strategy."""
        summaries = []
        for state in self._states.values():
            position = state.position
            summaries.append(StrategySummary(
                id=state.strategy_id,
                name=state.config.display_name,
                target_symbol=state.config.target_symbol or state.config.target_token,
                status=state.status,
                cycle=position.cycle,
                completed_cycles=state.completed_cycles,
                total_target_held=position.total_target_held,
                average_cost_basis=position.average_cost_basis,
                total_realized_pnl=state.total_realized_pnl + position.realized_pnl,
            ))
        return summaries

    def get_position(self, strategy_id: str) -> Position:
        """Current cycle position of a strategy."""
        return self.get_state(strategy_id).position

    def statistics(self) -> StrategyStatistics:
        """Aggregate performance across every registered strategy."""
        return calculate_statistics(list(self._states.values()))
