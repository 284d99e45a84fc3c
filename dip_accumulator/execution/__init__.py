"""
Execution module for the dip accumulator.

This module defines the exchange, price feed and store interfaces consumed by
the strategy engine, the gateway that bounds and serializes calls to them, and
in-memory implementations for paper trading.
"""

from .gateway import TradeGateway
from .interfaces import Exchange, PriceFeed, Quote, StrategyStore, SwapResult
from .paper import ManualPriceFeed, PaperExchange

__all__ = [
    "Exchange",
    "ManualPriceFeed",
    "PaperExchange",
    "PriceFeed",
    "Quote",
    "StrategyStore",
    "SwapResult",
    "TradeGateway",
]
