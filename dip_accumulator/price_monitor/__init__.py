"""
Price monitoring module for the dip accumulator.

This module tracks the rolling high of a token's price over a trailing time
window and derives the dip percentage used to arm accumulation levels.
"""

from .models import PriceSample
from .rolling_high import RollingHighTracker

__all__ = ["PriceSample", "RollingHighTracker"]
