"""
Aggregate performance statistics across strategies.
"""

import logging
from typing import List, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from ..models import StrategyState, StrategyStatus


logger = logging.getLogger(__name__)

STRATEGY_COLUMNS = [
    "id", "name", "status", "total_trades", "successful_trades", "failed_trades",
    "total_profit", "completed_cycles", "open_position",
]

CYCLE_COLUMNS = ["cycle", "buys", "sells", "base_spent", "base_received", "target_bought", "realized_pnl"]


class StrategyStatistics(BaseModel):
    """Portfolio-wide strategy statistics."""

    model_config = ConfigDict(frozen=True)

    total_strategies: int = Field(default=0, ge=0)
    active_strategies: int = Field(default=0, ge=0)
    stopped_strategies: int = Field(default=0, ge=0)
    error_strategies: int = Field(default=0, ge=0)
    total_trades: int = Field(default=0, ge=0)
    successful_trades: int = Field(default=0, ge=0)
    failed_trades: int = Field(default=0, ge=0)
    success_rate: float = 0.0
    total_profit: float = 0.0
    average_profit_per_trade: float = 0.0
    total_cycles_completed: int = Field(default=0, ge=0)
    average_cycles_per_strategy: float = 0.0
    best_strategy_id: Optional[str] = None
    best_strategy_name: Optional[str] = None
    best_strategy_profit: Optional[float] = None


def strategies_frame(states: List[StrategyState]) -> pd.DataFrame:
    """One row per strategy with its trade counts and profit."""
    rows = [
        {
            "id": state.strategy_id,
            "name": state.config.display_name,
            "status": state.status.value,
            "total_trades": state.total_trades,
            "successful_trades": state.successful_trades,
            "failed_trades": state.failed_trades,
            # Realized profit includes slices already sold in the open cycle.
            "total_profit": state.total_realized_pnl + state.position.realized_pnl,
            "completed_cycles": state.completed_cycles,
            "open_position": not state.position.is_empty,
        }
        for state in states
    ]
    return pd.DataFrame(rows, columns=STRATEGY_COLUMNS)


def calculate_statistics(states: List[StrategyState]) -> StrategyStatistics:
    """
    Calculate aggregate statistics across strategies.

    Args:
        states: Strategy states to aggregate

    Returns:
        StrategyStatistics; the best strategy is the one with the highest
        positive profit, or None when nothing is in profit
    """
    df = strategies_frame(states)
    if df.empty:
        return StrategyStatistics()

    status_counts = df["status"].value_counts()
    total_trades = int(df["total_trades"].sum())
    successful_trades = int(df["successful_trades"].sum())
    total_profit = float(df["total_profit"].sum())
    total_cycles = int(df["completed_cycles"].sum())

    best_id = best_name = best_profit = None
    profitable = df[df["total_profit"] > 0]
    if not profitable.empty:
        best = profitable.loc[profitable["total_profit"].idxmax()]
        best_id, best_name, best_profit = best["id"], best["name"], float(best["total_profit"])

    stats = StrategyStatistics(
        total_strategies=len(df),
        active_strategies=int(status_counts.get(StrategyStatus.ACTIVE.value, 0)),
        stopped_strategies=int(len(df) - status_counts.get(StrategyStatus.ACTIVE.value, 0)
                               - status_counts.get(StrategyStatus.ERROR.value, 0)),
        error_strategies=int(status_counts.get(StrategyStatus.ERROR.value, 0)),
        total_trades=total_trades,
        successful_trades=successful_trades,
        failed_trades=int(df["failed_trades"].sum()),
        success_rate=(successful_trades / total_trades * 100) if total_trades > 0 else 0.0,
        total_profit=total_profit,
        average_profit_per_trade=(total_profit / total_trades) if total_trades > 0 else 0.0,
        total_cycles_completed=total_cycles,
        average_cycles_per_strategy=total_cycles / len(df),
        best_strategy_id=best_id,
        best_strategy_name=best_name,
        best_strategy_profit=best_profit,
    )
    logger.debug(f"Calculated statistics for {stats.total_strategies} strategies")
    return stats


def cycle_summary(state: StrategyState) -> pd.DataFrame:
    """
    Per-cycle totals for a strategy, including the open cycle.

    Returns:
        DataFrame indexed by position with the columns in CYCLE_COLUMNS
    """
    trades = state.trade_history + state.position.trades
    if not trades:
        return pd.DataFrame(columns=CYCLE_COLUMNS)

    df = pd.DataFrame([trade.model_dump() for trade in trades])
    buys = df[df["side"] == "buy"]
    sells = df[df["side"] == "sell"]

    summary = pd.DataFrame({"cycle": sorted(df["cycle"].unique())}).set_index("cycle")
    summary["buys"] = buys.groupby("cycle").size()
    summary["sells"] = sells.groupby("cycle").size()
    summary["base_spent"] = buys.groupby("cycle")["amount_base"].sum()
    summary["base_received"] = sells.groupby("cycle")["amount_base"].sum()
    summary["target_bought"] = buys.groupby("cycle")["amount_target"].sum()
    summary["realized_pnl"] = sells.groupby("cycle")["realized_pnl"].sum()
    summary = summary.fillna(0)
    summary[["buys", "sells"]] = summary[["buys", "sells"]].astype(int)
    return summary.reset_index()[CYCLE_COLUMNS]
