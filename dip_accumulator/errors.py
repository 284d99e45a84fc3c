"""
Exception taxonomy for the dip accumulator.

Trading errors raised by the exchange collaborators are recoverable: the
controller logs them, leaves the affected level or step unexecuted and retries
on a later tick. Invariant violations are fatal to the strategy that raised
them and move its controller to the error state.
"""


class DipAccumulatorError(Exception):
    """Base class for all package errors."""


class TradingError(DipAccumulatorError):
    """An exchange or price feed call failed in a way that may succeed later."""

    recoverable = True


class LiquidityError(TradingError):
    """No route or not enough liquidity for the requested swap."""


class SlippageError(TradingError):
    """Execution price moved beyond the allowed slippage."""


class InsufficientFundsError(TradingError):
    """The wallet cannot cover the requested amount."""


class NetworkError(TradingError):
    """Transport failure or timeout talking to a collaborator."""


class PriceUnavailableError(NetworkError):
    """The price feed has no price for the requested token."""


class InvariantViolation(DipAccumulatorError):
    """Position bookkeeping would be corrupted by continuing."""

    recoverable = False


class ConfigurationError(DipAccumulatorError):
    """Configuration file or strategy definition is invalid."""


class AlreadyActiveError(DipAccumulatorError):
    """A controller is already running for the strategy."""

    def __init__(self, strategy_id: str):
        super().__init__(f"Strategy {strategy_id} is already active")
        self.strategy_id = strategy_id


class StrategyNotFoundError(DipAccumulatorError):
    """No strategy is registered under the requested id."""

    def __init__(self, strategy_id: str):
        super().__init__(f"Strategy {strategy_id} not found")
        self.strategy_id = strategy_id
