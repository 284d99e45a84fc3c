"""
Strategy engine module for orchestrating accumulation-and-exit strategies.

This module sequences the rolling high, accumulation and liquidation engines
into per-strategy controllers and manages them through a registry.
"""

from .controller import StrategyController
from .registry import BulkOperationResult, StrategyRegistry
from .tick import TickResult, tick

__all__ = ["BulkOperationResult", "StrategyController", "StrategyRegistry", "TickResult", "tick"]
