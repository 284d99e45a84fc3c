"""
Liquidation module for the dip accumulator.

This module decides when and how much of a position to sell as profit
accrues, either in one exit at a target or in slices across a profit range,
and applies the stop-loss override.
"""

from .liquidation_engine import (
    LiquidationEngine,
    SellOrder,
    build_liquidation_steps,
    distribution_weights,
)

__all__ = ["LiquidationEngine", "SellOrder", "build_liquidation_steps", "distribution_weights"]
