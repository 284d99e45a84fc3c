"""
Configuration management module for the dip accumulator.

This module handles loading, validating, and managing YAML configuration files
using Pydantic for robust validation and type safety.
"""

from .config_manager import ConfigurationManager
from .models import (
    AppConfig,
    DipLevel,
    EngineSettings,
    RangeProfitConfig,
    SimpleProfitConfig,
    StrategyConfig,
)

__all__ = [
    "AppConfig",
    "ConfigurationManager",
    "DipLevel",
    "EngineSettings",
    "RangeProfitConfig",
    "SimpleProfitConfig",
    "StrategyConfig",
]
