"""
Data persistence module for the dip accumulator.

This module handles saving and loading strategy state to/from persistent storage,
including error handling for corrupted files and recovery mechanisms.
"""

from .state_manager import JsonStrategyStore

__all__ = ['JsonStrategyStore']
