"""
Strategy events and the observers that receive them.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)

EventKind = Literal[
    "started",
    "stopped",
    "buy",
    "sell",
    "cycle_closed",
    "trade_failed",
    "price_unavailable",
    "error",
]


class StrategyEvent(BaseModel):
    """Something an external observer may want to hear about."""

    model_config = ConfigDict(frozen=True)

    strategy_id: str
    kind: EventKind
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


class StrategyObserver:
    """Receives strategy events. The base class ignores them."""

    def notify(self, event: StrategyEvent) -> None:
        pass


class LoggingObserver(StrategyObserver):
    """Writes every event to the log."""

    LEVELS = {
        "trade_failed": logging.WARNING,
        "price_unavailable": logging.WARNING,
        "error": logging.ERROR,
    }

    def notify(self, event: StrategyEvent) -> None:
        level = self.LEVELS.get(event.kind, logging.INFO)
        logger.log(level, f"[{event.strategy_id}] {event.kind}: {event.message}")


class RecordingObserver(StrategyObserver):
    """Keeps every event in memory, newest last."""

    def __init__(self):
        self.events: List[StrategyEvent] = []

    def notify(self, event: StrategyEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]
