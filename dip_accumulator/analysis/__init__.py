"""
Performance analysis module for the dip accumulator.
"""

from .performance import StrategyStatistics, calculate_statistics, cycle_summary, strategies_frame

__all__ = ["StrategyStatistics", "calculate_statistics", "cycle_summary", "strategies_frame"]
