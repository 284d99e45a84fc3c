"""
Unit tests for strategy events, observers and the error taxonomy.
"""

import logging

import pytest
from pydantic import ValidationError

from dip_accumulator.errors import (
    AlreadyActiveError,
    InsufficientFundsError,
    InvariantViolation,
    LiquidityError,
    NetworkError,
    SlippageError,
    TradingError,
)
from dip_accumulator.events import LoggingObserver, RecordingObserver, StrategyEvent


def test_recording_observer_keeps_order():
    """Test that events are recorded newest last."""
    observer = RecordingObserver()

    observer.notify(StrategyEvent(strategy_id="a", kind="started", message="go"))
    observer.notify(StrategyEvent(strategy_id="a", kind="buy", message="bought", data={"level": 1}))

    assert observer.kinds() == ["started", "buy"]
    assert observer.events[1].data == {"level": 1}


def test_unknown_event_kind_rejected():
    """Test that only known event kinds can be emitted."""
    with pytest.raises(ValidationError):
        StrategyEvent(strategy_id="a", kind="exploded", message="?")


def test_logging_observer_levels(caplog):
    """Test that failures are logged as warnings and errors."""
    observer = LoggingObserver()

    with caplog.at_level(logging.INFO, logger="dip_accumulator.events"):
        observer.notify(StrategyEvent(strategy_id="a", kind="buy", message="bought"))
        observer.notify(StrategyEvent(strategy_id="a", kind="trade_failed", message="slipped"))
        observer.notify(StrategyEvent(strategy_id="a", kind="error", message="broken"))

    assert [record.levelno for record in caplog.records] == [logging.INFO, logging.WARNING, logging.ERROR]
    assert "[a] trade_failed: slipped" in caplog.text


def test_trading_errors_are_recoverable():
    """Test the recoverable flag across the error taxonomy."""
    for error_class in (LiquidityError, SlippageError, InsufficientFundsError, NetworkError):
        assert issubclass(error_class, TradingError)
        assert error_class.recoverable is True

    assert InvariantViolation.recoverable is False
    assert not issubclass(InvariantViolation, TradingError)

    error = AlreadyActiveError("alpha")
    assert error.strategy_id == "alpha"
    assert "alpha" in str(error)
