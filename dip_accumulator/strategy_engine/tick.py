"""
Pure single-tick evaluation of a strategy.

``tick`` runs the accumulation and liquidation rules against one price sample
assuming every order fills exactly at the sample price. It touches no clock,
network or store, so whole price paths can be replayed deterministically.
"""

from typing import List, NamedTuple, Optional

from ..accumulation import AccumulationEngine
from ..config.models import StrategyConfig
from ..liquidation import LiquidationEngine
from ..models import Position, TickAction
from ..price_monitor.models import PriceSample


class TickResult(NamedTuple):
    """New position and the trades made during the tick."""

    position: Position
    actions: List[TickAction]


def tick(config: StrategyConfig, position: Position, sample: PriceSample,
         rolling_high: Optional[float]) -> TickResult:
    """
    Evaluate one tick.

    Args:
        config: Strategy configuration
        position: Position before the tick; not modified
        sample: Price sample for this tick
        rolling_high: Rolling high including ``sample``

    Returns:
        TickResult with the updated copy of the position. When the tick
        closes the cycle the returned position carries its close reason and
        the caller starts the next cycle.
    """
    position = position.model_copy(deep=True)
    actions: List[TickAction] = []
    price = sample.price

    dip_pct = None
    if rolling_high:
        dip_pct = (rolling_high - price) / rolling_high * 100

    accumulation = AccumulationEngine(config)
    level = accumulation.plan(position, price, dip_pct)
    if level is not None:
        amount_out = level.buy_amount_base / price
        trade = accumulation.apply_buy(position, level, price, level.buy_amount_base, amount_out,
                                       sample.timestamp_ms)
        actions.append(TickAction(
            side="buy",
            price=price,
            amount_base=level.buy_amount_base,
            amount_target=amount_out,
            level=level.level,
            reason=trade.reason,
        ))

    liquidation = LiquidationEngine(config)
    for order in liquidation.plan(position, price):
        proceeds = order.quantity * price
        liquidation.apply_sell(position, order, price, proceeds, sample.timestamp_ms)
        actions.append(TickAction(
            side="sell",
            price=price,
            amount_base=proceeds,
            amount_target=order.quantity,
            step=order.step,
            reason=order.reason,
        ))
        if position.is_closed:
            break

    return TickResult(position, actions)
