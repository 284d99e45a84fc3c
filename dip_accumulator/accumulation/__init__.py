"""
Accumulation module for the dip accumulator.

This module decides when a dip arms the next buy level and executes the buy
while keeping the position's weighted average cost basis disciplined.
"""

from .accumulation_engine import AccumulationEngine

__all__ = ["AccumulationEngine"]
