"""
Accumulation engine implementation for dip-level buying.
"""

import logging
from typing import Optional

from ..config.models import DipLevel, StrategyConfig
from ..errors import InvariantViolation
from ..execution.gateway import TradeGateway
from ..models import THRESHOLD_EPSILON, Position, TradeRecord, Wallet


logger = logging.getLogger(__name__)


class AccumulationEngine:
    """Decides and executes buys against the configured dip levels."""

    def __init__(self, config: StrategyConfig):
        """
        Initialize the accumulation engine.

        Args:
            config: Strategy configuration
        """
        self.config = config
        self._levels = sorted(config.levels, key=lambda level: level.threshold_pct)

    @staticmethod
    def passes_discipline(position: Position, price: float) -> bool:
        """
        Check the average-price discipline.

        A buy is allowed only when nothing is held yet or when it would not
        raise the average cost basis.
        """
        average = position.average_cost_basis
        return average is None or price <= average

    def profit_lock_armed(self, position: Position, price: float) -> bool:
        """
        Check whether a zero or positive stop-loss has locked in profit.

        The lock arms once peak profit has been above the stop. While it is
        armed and profit is back at or below the stop the position is about
        to be sold, so no level buys into it.
        """
        stop = self.config.stop_loss_pct
        peak = position.peak_profit_pct
        if stop is None or stop < 0 or peak is None or peak <= stop:
            return False
        profit_pct = position.profit_pct(price)
        return profit_pct is not None and profit_pct <= stop + THRESHOLD_EPSILON

    def select_level(self, position: Position, dip_pct: Optional[float]) -> Optional[DipLevel]:
        """
        Find the level the current dip arms.

        Only the first unexecuted level whose threshold has been reached is
        returned, so a single tick never fires more than one level even when
        the dip crosses several thresholds at once.

        Args:
            position: Current cycle position
            dip_pct: Dip from the rolling high in percent

        Returns:
            The armed level, or None
        """
        if dip_pct is None:
            return None

        for level in self._levels:
            if position.level_executed(level.level):
                continue
            if level.threshold_pct <= dip_pct + THRESHOLD_EPSILON:
                return level
            return None
        return None

    def plan(self, position: Position, price: float, dip_pct: Optional[float]) -> Optional[DipLevel]:
        """
        Decide whether this tick buys.

        Args:
            position: Current cycle position
            price: Current price of one target unit in base units
            dip_pct: Dip from the rolling high in percent

        Returns:
            The level to buy for, or None when no buy should happen
        """
        level = self.select_level(position, dip_pct)
        if level is None:
            return None

        if not self.passes_discipline(position, price):
            logger.info(
                f"{self.config.id}: level {level.level} armed at {dip_pct:.2f}% dip but price "
                f"{price:.8f} is above average {position.average_cost_basis:.8f}, holding"
            )
            return None

        if self.profit_lock_armed(position, price):
            logger.info(
                f"{self.config.id}: level {level.level} armed at {dip_pct:.2f}% dip but the "
                f"{self.config.stop_loss_pct}% profit lock has fired, not buying"
            )
            return None

        return level

    def apply_buy(self, position: Position, level: DipLevel, price: float, amount_in: float,
                  amount_out: float, timestamp_ms: int, tx_hash: Optional[str] = None) -> TradeRecord:
        """
        Record a filled buy on the position.

        Args:
            position: Position to update in place
            level: Level the buy was made for
            price: Price the buy was decided at
            amount_in: Base spent
            amount_out: Target received
            timestamp_ms: Fill time
            tx_hash: Transaction hash reported by the exchange

        Returns:
            The trade record appended to the position

        Raises:
            InvariantViolation: If the buy breaks the level or average-price rules
        """
        if position.level_executed(level.level):
            raise InvariantViolation(
                f"{self.config.id}: level {level.level} already executed in cycle {position.cycle}"
            )
        if not self.passes_discipline(position, price):
            raise InvariantViolation(
                f"{self.config.id}: buy at {price} above average cost basis {position.average_cost_basis}"
            )
        if amount_out <= 0 or amount_in <= 0:
            raise InvariantViolation(
                f"{self.config.id}: buy fill must be positive, got in={amount_in} out={amount_out}"
            )

        previous_average = position.average_cost_basis
        was_empty = position.is_empty

        position.total_base_invested += amount_in
        position.total_target_held += amount_out
        position.executed_levels = position.executed_levels + [level.level]
        # Peak profit was measured against the previous average
        position.peak_profit_pct = None
        if was_empty and position.opened_at_ms is None:
            position.opened_at_ms = timestamp_ms

        trade = TradeRecord(
            side="buy",
            cycle=position.cycle,
            price=price,
            amount_base=amount_in,
            amount_target=amount_out,
            level=level.level,
            reason=level.description or f"level {level.level}",
            tx_hash=tx_hash,
            timestamp_ms=timestamp_ms,
        )
        position.trades.append(trade)

        if previous_average is None:
            logger.info(
                f"{self.config.id}: opened cycle {position.cycle} with level {level.level}, "
                f"{amount_in:.6f} base -> {amount_out:.6f} target at {price:.8f}"
            )
        else:
            improvement = (previous_average - position.average_cost_basis) / previous_average * 100
            logger.info(
                f"{self.config.id}: level {level.level} bought {amount_out:.6f} target for "
                f"{amount_in:.6f} base, average {previous_average:.8f} -> "
                f"{position.average_cost_basis:.8f} ({improvement:.2f}% better)"
            )
        return trade

    async def execute(self, position: Position, price: float, dip_pct: Optional[float],
                      gateway: TradeGateway, wallet: Wallet, timestamp_ms: int) -> Optional[TradeRecord]:
        """
        Run the accumulation step of a tick against the exchange.

        Trading errors from the gateway propagate to the caller and leave the
        level unexecuted, so it is retried on a later tick.

        Returns:
            The trade record if a buy was filled, None otherwise
        """
        level = self.plan(position, price, dip_pct)
        if level is None:
            return None

        logger.info(
            f"{self.config.id}: {dip_pct:.2f}% dip arms level {level.level} "
            f"(threshold {level.threshold_pct:.2f}%), buying {level.buy_amount_base} base"
        )
        result = await gateway.buy(wallet, self.config, level.buy_amount_base)
        return self.apply_buy(
            position,
            level,
            price,
            level.buy_amount_base,
            result.amount_out,
            timestamp_ms,
            tx_hash=result.tx_hash,
        )
