"""
Per-strategy controller driving the polling loop.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from ..accumulation import AccumulationEngine
from ..errors import AlreadyActiveError, TradingError
from ..events import LoggingObserver, StrategyEvent, StrategyObserver
from ..execution.gateway import TradeGateway
from ..execution.interfaces import StrategyStore
from ..liquidation import LiquidationEngine
from ..models import StrategyState, StrategyStatus, Wallet
from ..price_monitor import PriceSample, RollingHighTracker


logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class StrategyController:
    """
    State machine for one running strategy.

    created -> active -> stopped | error. While active, ticks run with a fixed
    delay: the next tick starts ``poll_interval_ms`` after the previous one
    finished, so ticks of one strategy never overlap. Stopping only takes
    effect between ticks.
    """

    def __init__(self, state: StrategyState, gateway: TradeGateway, store: StrategyStore,
                 observer: Optional[StrategyObserver] = None,
                 clock: Optional[Callable[[], int]] = None):
        """
        Initialize the controller.

        Args:
            state: Persisted strategy state; owned and updated by this controller
            gateway: Access to the exchange and price feed
            store: Where state is persisted after every tick
            observer: Receives strategy events (defaults to logging them)
            clock: Millisecond clock, wall time by default
        """
        self.state = state
        self.config = state.config
        self.gateway = gateway
        self.store = store
        self.observer = observer or LoggingObserver()
        self._clock = clock or _wall_clock_ms

        self.tracker = RollingHighTracker(self.config.dip_timeframe_ms)
        self.accumulation = AccumulationEngine(self.config)
        self.liquidation = LiquidationEngine(self.config)

        self._wallet: Optional[Wallet] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def strategy_id(self) -> str:
        return self.config.id

    @property
    def status(self) -> StrategyStatus:
        return self.state.status

    @property
    def is_active(self) -> bool:
        return self.state.status == StrategyStatus.ACTIVE

    @property
    def wallet(self) -> Optional[Wallet]:
        return self._wallet

    def activate(self, wallet: Wallet) -> None:
        """
        Move to the active state without scheduling ticks.

        Used by ``start`` and by callers that drive ``run_tick`` themselves.
        """
        if self.is_active:
            raise AlreadyActiveError(self.strategy_id)

        self._wallet = wallet
        self.state.wallet_address = wallet.address
        self.state.status = StrategyStatus.ACTIVE
        self.state.last_error = None
        self._persist()
        self._emit("started", f"{self.config.display_name} started with wallet {wallet.address}")

    async def start(self, wallet: Wallet) -> None:
        """
        Start ticking with ``wallet``.

        Raises:
            AlreadyActiveError: If the controller is already active
        """
        self.activate(wallet)
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"strategy-{self.strategy_id}")
        logger.info(
            f"Started {self.strategy_id}: polling every {self.config.poll_interval_ms}ms, "
            f"dip window {self.config.dip_timeframe_label}"
        )

    async def stop(self) -> None:
        """Stop ticking, letting an in-flight tick finish first."""
        if self._task is None:
            if self.is_active:
                self._mark_stopped("stopped")
            return

        self._stop_event.set()
        await self._task

    async def wait(self) -> None:
        """Wait until the polling loop exits on its own."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        poll_s = self.config.poll_interval_ms / 1000
        try:
            while not self._stop_event.is_set():
                await self.run_tick()
                if not self.is_active:
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=poll_s)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self.is_active:
                self._mark_stopped("stopped")

    async def run_tick(self) -> bool:
        """
        Run a single tick.

        Fetches the price, feeds the rolling high, runs accumulation then
        liquidation, closes the cycle when the position is flat and persists.
        Trading errors are recoverable and only skip the affected action;
        anything else moves the controller to the error state.

        Returns:
            True if the tick completed, False if it was skipped or failed
        """
        if not self.is_active:
            logger.debug(f"Skipping tick for {self.strategy_id}: status {self.status.value}")
            return False

        try:
            try:
                price = await self.gateway.current_price(self.config.target_token)
            except TradingError as e:
                logger.warning(f"{self.strategy_id}: price unavailable, skipping tick: {e}")
                self._emit("price_unavailable", str(e))
                return False

            now_ms = self._clock()
            self.tracker.add(PriceSample(timestamp_ms=now_ms, price=price))
            dip_pct = self.tracker.dip_pct(price)
            logger.debug(
                f"{self.strategy_id}: price {price:.8f}, high {self.tracker.get_high()}, "
                f"dip {dip_pct if dip_pct is None else round(dip_pct, 4)}%"
            )

            await self._run_phase(
                "buy",
                self.accumulation.execute(self.state.position, price, dip_pct, self.gateway, self._wallet, now_ms),
            )
            await self._run_phase(
                "sell",
                self.liquidation.execute(self.state.position, price, self.gateway, self._wallet, now_ms),
            )

            if self.state.position.is_closed:
                self._close_cycle()

            self._persist()
            return True

        except Exception as e:
            self._fail(e)
            return False

    async def _run_phase(self, side: str, action: Awaitable) -> None:
        position = self.state.position
        trades_before = len(position.trades)
        try:
            await action
        except TradingError as e:
            self.state.failed_trades += 1
            self.state.last_error = f"{type(e).__name__}: {e}"
            logger.warning(f"{self.strategy_id}: {side} failed, will retry next tick: {e}")
            self._emit("trade_failed", str(e), side=side, error=type(e).__name__)
        finally:
            for trade in position.trades[trades_before:]:
                self.state.successful_trades += 1
                self._emit(
                    trade.side,
                    f"{trade.side} {trade.amount_target:.6f} target for {trade.amount_base:.6f} base at {trade.price:.8f}",
                    trade=trade.model_dump(mode="json"),
                )

    def _close_cycle(self) -> None:
        closed = self.state.close_cycle()
        self._emit(
            "cycle_closed",
            f"cycle {closed.cycle} closed ({closed.close_reason}) with P&L {closed.realized_pnl:+.6f}",
            cycle=closed.cycle,
            close_reason=closed.close_reason,
            realized_pnl=closed.realized_pnl,
        )

        max_cycles = self.config.max_cycles
        if max_cycles and self.state.completed_cycles >= max_cycles:
            logger.info(f"{self.strategy_id}: completed {self.state.completed_cycles}/{max_cycles} cycles")
            self._mark_stopped(f"stopped after completing {max_cycles} cycles")

    def _fail(self, error: Exception) -> None:
        logger.error(f"Strategy {self.strategy_id} failed: {error}", exc_info=True)
        self.state.status = StrategyStatus.ERROR
        self.state.last_error = f"{type(error).__name__}: {error}"
        self._persist()
        self._emit("error", str(error), error=type(error).__name__)

    def _mark_stopped(self, message: str) -> None:
        self.state.status = StrategyStatus.STOPPED
        self._persist()
        self._emit("stopped", message)

    def _persist(self) -> None:
        self.state.last_update = datetime.now()
        if not self.store.save(self.state):
            logger.error(f"Failed to persist state for {self.strategy_id}")

    def _emit(self, kind: str, message: str, **data) -> None:
        event = StrategyEvent(strategy_id=self.strategy_id, kind=kind, message=message, data=data)
        try:
            self.observer.notify(event)
        except Exception as e:
            logger.warning(f"Observer failed on {kind} event for {self.strategy_id}: {e}")
