"""
Dip Accumulator - accumulate a token on confirmed dips and exit into profit.

This package watches a token's price against a base asset, buys on dips from
a rolling high while keeping the weighted average cost basis disciplined, and
sells the position as profit accrues, either in one exit or across a profit
range.
"""

__version__ = "0.1.0"
__author__ = "Dip Accumulator Team"

# Lazy imports keep `import dip_accumulator` cheap for the CLI
__all__ = [
    "AccumulationEngine",
    "ConfigurationManager",
    "JsonStrategyStore",
    "LiquidationEngine",
    "Position",
    "RollingHighTracker",
    "StrategyConfig",
    "StrategyController",
    "StrategyRegistry",
    "StrategyState",
    "TradeGateway",
    "tick",
]

_LAZY_IMPORTS = {
    "AccumulationEngine": ".accumulation",
    "ConfigurationManager": ".config",
    "JsonStrategyStore": ".persistence",
    "LiquidationEngine": ".liquidation",
    "Position": ".models",
    "RollingHighTracker": ".price_monitor",
    "StrategyConfig": ".config",
    "StrategyController": ".strategy_engine",
    "StrategyRegistry": ".strategy_engine",
    "StrategyState": ".models",
    "TradeGateway": ".execution",
    "tick": ".strategy_engine",
}


def __getattr__(name):
    """Lazy import for package components."""
    if name in _LAZY_IMPORTS:
        import importlib
        module = importlib.import_module(_LAZY_IMPORTS[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
