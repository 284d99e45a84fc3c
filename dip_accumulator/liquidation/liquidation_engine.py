"""
Liquidation engine implementation for profit taking and stop-loss exits.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config.models import RangeProfitConfig, SimpleProfitConfig, StrategyConfig
from ..errors import InvariantViolation
from ..execution.gateway import TradeGateway
from ..models import POSITION_DUST, THRESHOLD_EPSILON, CloseReason, LiquidationStep, Position, TradeRecord, Wallet


logger = logging.getLogger(__name__)

FRACTION_TOLERANCE = 1e-9


def distribution_weights(steps: int, distribution: str) -> List[float]:
    """
    Fraction of the position sold at each step.

    linear sells equal slices, aggressive weights step i by (N - i) so the
    early thresholds sell more, conservative weights it by (i + 1) so the late
    thresholds sell more. Weights are normalized to sum to one.
    """
    if steps < 1:
        raise ValueError(f"steps must be >= 1, got {steps}")

    if distribution == "linear":
        raw = [1.0] * steps
    elif distribution == "aggressive":
        raw = [float(steps - i) for i in range(steps)]
    elif distribution == "conservative":
        raw = [float(i + 1) for i in range(steps)]
    else:
        raise ValueError(f"Unknown profit distribution: {distribution}")

    total = sum(raw)
    return [weight / total for weight in raw]


def build_liquidation_steps(profit: RangeProfitConfig) -> List[LiquidationStep]:
    """
    Derive the sell ladder for a profit range.

    Thresholds are evenly spaced from ``min_pct`` to ``max_pct`` inclusive.

    Raises:
        InvariantViolation: If the fractions do not sum to one
    """
    steps = profit.steps
    if steps == 1:
        thresholds = [profit.min_pct]
    else:
        spacing = (profit.max_pct - profit.min_pct) / (steps - 1)
        thresholds = [profit.min_pct + spacing * i for i in range(steps)]

    fractions = distribution_weights(steps, profit.distribution)
    total = sum(fractions)
    if abs(total - 1.0) > FRACTION_TOLERANCE:
        raise InvariantViolation(f"Liquidation fractions sum to {total!r}, expected 1.0")

    return [
        LiquidationStep(step=i + 1, threshold_profit_pct=threshold, fraction_of_position=fraction)
        for i, (threshold, fraction) in enumerate(zip(thresholds, fractions))
    ]


class SellOrder(BaseModel):
    """A sell decided by the liquidation engine."""

    model_config = ConfigDict(frozen=True)

    quantity: float = Field(gt=0.0)
    reason: CloseReason
    step: Optional[int] = None


class LiquidationEngine:
    """Decides and executes sells as the position becomes profitable."""

    def __init__(self, config: StrategyConfig):
        """
        Initialize the liquidation engine.

        Args:
            config: Strategy configuration
        """
        self.config = config

    def stop_loss_triggered(self, position: Position, profit_pct: float) -> bool:
        """
        Check the stop-loss override.

        A negative stop cuts losses as soon as profit falls to it. A zero or
        positive stop locks in profit: it arms once the position has been
        above it and fires when profit falls back to it.
        """
        stop = self.config.stop_loss_pct
        if stop is None:
            return False
        if stop < 0:
            return profit_pct <= stop + THRESHOLD_EPSILON
        peak = position.peak_profit_pct
        return peak is not None and peak > stop and profit_pct <= stop + THRESHOLD_EPSILON

    def plan(self, position: Position, price: float) -> List[SellOrder]:
        """
        Decide which sells this tick makes.

        Starting a range liquidation derives the step ladder and freezes the
        position size on ``position`` so later slices stay stable while the
        holdings shrink.

        Args:
            position: Current cycle position, updated in place
            price: Current price of one target unit in base units

        Returns:
            Sell orders in execution order
        """
        if position.is_empty or position.is_closed:
            return []

        profit_pct = position.profit_pct(price)
        if position.peak_profit_pct is None or profit_pct > position.peak_profit_pct:
            position.peak_profit_pct = profit_pct

        if self.stop_loss_triggered(position, profit_pct):
            logger.warning(
                f"{self.config.id}: stop-loss at {profit_pct:.2f}% profit "
                f"(stop {self.config.stop_loss_pct}%), selling everything"
            )
            return [SellOrder(quantity=position.total_target_held, reason="stop_loss")]

        profit = self.config.profit
        if isinstance(profit, SimpleProfitConfig):
            if profit_pct >= profit.target_pct - THRESHOLD_EPSILON:
                logger.info(
                    f"{self.config.id}: profit {profit_pct:.2f}% reached target {profit.target_pct}%"
                )
                return [SellOrder(quantity=position.total_target_held, reason="profit_target")]
            return []

        return self._plan_range(position, profit, profit_pct)

    def _plan_range(self, position: Position, profit: RangeProfitConfig,
                    profit_pct: float) -> List[SellOrder]:
        if not position.liquidation_started:
            if profit_pct < profit.min_pct - THRESHOLD_EPSILON:
                return []
            position.liquidation_steps = build_liquidation_steps(profit)
            position.original_position_size = position.total_target_held
            logger.info(
                f"{self.config.id}: range liquidation started at {profit_pct:.2f}% profit, "
                f"{len(position.liquidation_steps)} {profit.distribution} steps over "
                f"{position.original_position_size:.6f} target"
            )

        pending = [step for step in position.liquidation_steps if not step.executed]
        orders = []
        remaining = position.total_target_held
        for step in pending:
            if step.threshold_profit_pct > profit_pct + THRESHOLD_EPSILON:
                break
            if step is pending[-1]:
                quantity = remaining
            else:
                quantity = min(step.fraction_of_position * position.original_position_size, remaining)
            if quantity <= POSITION_DUST:
                break
            orders.append(SellOrder(quantity=quantity, reason="profit_range", step=step.step))
            remaining -= quantity
        return orders

    def apply_sell(self, position: Position, order: SellOrder, price: float, proceeds: float,
                   timestamp_ms: int, tx_hash: Optional[str] = None) -> TradeRecord:
        """
        Record a filled sell on the position.

        A full exit realizes ``proceeds - total_base_invested``. A partial exit
        realizes ``proceeds - quantity * average`` and removes that cost from
        the invested total, which leaves the average cost basis unchanged.

        Raises:
            InvariantViolation: If the sell oversells or skips a lower step
        """
        held = position.total_target_held
        if order.quantity > held * (1 + FRACTION_TOLERANCE) + POSITION_DUST:
            raise InvariantViolation(
                f"{self.config.id}: selling {order.quantity} but only {held} held"
            )

        if order.step is not None:
            self._check_step_order(position, order.step)

        full_exit = order.step is None or order.quantity >= held - POSITION_DUST
        if full_exit:
            cost = position.total_base_invested
            remaining_target = 0.0
            remaining_base = 0.0
        else:
            cost = order.quantity * position.average_cost_basis
            remaining_target = held - order.quantity
            remaining_base = max(0.0, position.total_base_invested - cost)
            if remaining_target <= POSITION_DUST:
                remaining_target = 0.0
                remaining_base = 0.0

        pnl = proceeds - cost
        position.total_target_held = remaining_target
        position.total_base_invested = remaining_base
        position.realized_pnl += pnl

        if order.step is not None:
            for step in position.liquidation_steps:
                if step.step == order.step:
                    step.executed = True

        trade = TradeRecord(
            side="sell",
            cycle=position.cycle,
            price=price,
            amount_base=proceeds,
            amount_target=order.quantity,
            step=order.step,
            reason=order.reason,
            realized_pnl=pnl,
            tx_hash=tx_hash,
            timestamp_ms=timestamp_ms,
        )
        position.trades.append(trade)

        logger.info(
            f"{self.config.id}: sold {order.quantity:.6f} target for {proceeds:.6f} base "
            f"({order.reason}{'' if order.step is None else f' step {order.step}'}), P&L {pnl:+.6f}"
        )

        all_steps_done = position.liquidation_started and all(
            step.executed for step in position.liquidation_steps
        )
        if position.is_empty or all_steps_done:
            position.close_reason = order.reason
            position.closed_at_ms = timestamp_ms
            logger.info(
                f"{self.config.id}: cycle {position.cycle} closed ({order.reason}), "
                f"realized P&L {position.realized_pnl:+.6f}"
            )
        return trade

    def _check_step_order(self, position: Position, step_number: int) -> None:
        for step in position.liquidation_steps:
            if step.step == step_number:
                if step.executed:
                    raise InvariantViolation(
                        f"{self.config.id}: liquidation step {step_number} already executed"
                    )
                return
            if not step.executed:
                raise InvariantViolation(
                    f"{self.config.id}: step {step_number} sold before lower step {step.step}"
                )
        raise InvariantViolation(f"{self.config.id}: unknown liquidation step {step_number}")

    async def execute(self, position: Position, price: float, gateway: TradeGateway,
                      wallet: Wallet, timestamp_ms: int) -> List[TradeRecord]:
        """
        Run the liquidation step of a tick against the exchange.

        Sells are submitted one at a time in ascending threshold order. A
        trading error stops the ladder for this tick and propagates; fills
        that already happened stay recorded on the position.

        Returns:
            Trade records of the filled sells
        """
        trades = []
        for order in self.plan(position, price):
            result = await gateway.sell(wallet, self.config, order.quantity)
            trades.append(
                self.apply_sell(position, order, price, result.amount_out, timestamp_ms, tx_hash=result.tx_hash)
            )
            if position.is_closed:
                break
        return trades
