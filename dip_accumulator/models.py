"""
Shared data models for the dip accumulator.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config.models import StrategyConfig

# Holdings at or below this many target units count as fully liquidated.
POSITION_DUST = 1e-12

# Tolerance applied when comparing a computed percentage against a threshold.
THRESHOLD_EPSILON = 1e-9

CloseReason = Literal["profit_target", "profit_range", "stop_loss"]


class StrategyStatus(Enum):
    """States of the per-strategy controller lifecycle."""

    CREATED = "created"
    ACTIVE = "active"
    STOPPED = "stopped"
    ERROR = "error"


class TradeRecord(BaseModel):
    """A filled buy or sell."""

    model_config = ConfigDict(validate_assignment=True)

    trade_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    side: Literal["buy", "sell"]
    cycle: int = Field(ge=1)
    price: float = Field(gt=0.0, description="Reference price per target unit when the order was decided")
    amount_base: float = Field(ge=0.0, description="Base spent on a buy, base received on a sell")
    amount_target: float = Field(gt=0.0, description="Target received on a buy, target sold on a sell")
    level: Optional[int] = None
    step: Optional[int] = None
    reason: str = ""
    realized_pnl: float = 0.0
    tx_hash: Optional[str] = None
    timestamp_ms: int


class LiquidationStep(BaseModel):
    """One slice of a range liquidation, derived when liquidation starts."""

    model_config = ConfigDict(validate_assignment=True)

    step: int = Field(ge=1)
    threshold_profit_pct: float
    fraction_of_position: float = Field(gt=0.0, le=1.0)
    executed: bool = False


class Position(BaseModel):
    """Holdings and bookkeeping for the current accumulation cycle."""

    model_config = ConfigDict(validate_assignment=True)

    cycle: int = Field(default=1, ge=1)
    total_base_invested: float = Field(default=0.0, ge=0.0)
    total_target_held: float = Field(default=0.0, ge=0.0)
    executed_levels: List[int] = Field(default_factory=list)
    realized_pnl: float = 0.0
    liquidation_steps: List[LiquidationStep] = Field(default_factory=list)
    original_position_size: Optional[float] = Field(default=None, gt=0.0)
    peak_profit_pct: Optional[float] = None
    opened_at_ms: Optional[int] = None
    closed_at_ms: Optional[int] = None
    close_reason: Optional[CloseReason] = None
    trades: List[TradeRecord] = Field(default_factory=list)

    @property
    def average_cost_basis(self) -> Optional[float]:
        """Weighted average base paid per target unit, None while empty."""
        if self.total_target_held <= POSITION_DUST:
            return None
        return self.total_base_invested / self.total_target_held

    @property
    def is_empty(self) -> bool:
        return self.total_target_held <= POSITION_DUST

    @property
    def is_closed(self) -> bool:
        return self.close_reason is not None

    @property
    def liquidation_started(self) -> bool:
        return bool(self.liquidation_steps)

    def level_executed(self, level: int) -> bool:
        return level in self.executed_levels

    def profit_pct(self, price: float) -> Optional[float]:
        """Unrealized profit of the held position at ``price`` in percent."""
        average = self.average_cost_basis
        if average is None:
            return None
        return (price - average) / average * 100

    def next_cycle(self) -> "Position":
        """Fresh position for the following cycle with every flag reset."""
        return Position(cycle=self.cycle + 1)


class StrategyState(BaseModel):
    """Model for persisting strategy state."""

    model_config = ConfigDict(validate_assignment=True)

    config: StrategyConfig
    status: StrategyStatus = StrategyStatus.CREATED
    position: Position = Field(default_factory=Position)
    completed_cycles: int = Field(default=0, ge=0)
    total_realized_pnl: float = 0.0
    trade_history: List[TradeRecord] = Field(default_factory=list)
    successful_trades: int = Field(default=0, ge=0)
    failed_trades: int = Field(default=0, ge=0)
    wallet_address: Optional[str] = None
    last_error: Optional[str] = None
    last_update: datetime = Field(default_factory=datetime.now)

    @property
    def strategy_id(self) -> str:
        return self.config.id

    @property
    def total_trades(self) -> int:
        return self.successful_trades + self.failed_trades

    def close_cycle(self) -> Position:
        """Archive the closed position and start the next cycle."""
        closed = self.position
        self.completed_cycles += 1
        self.total_realized_pnl += closed.realized_pnl
        self.trade_history = self.trade_history + closed.trades
        self.position = closed.next_cycle()
        return closed


class Wallet(BaseModel):
    """Reference to a signing wallet; key custody lives with the exchange collaborator."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    label: str = ""


class TickAction(BaseModel):
    """A trade decided during a tick."""

    model_config = ConfigDict(frozen=True)

    side: Literal["buy", "sell"]
    price: float = Field(gt=0.0)
    amount_base: float = Field(ge=0.0)
    amount_target: float = Field(gt=0.0)
    level: Optional[int] = None
    step: Optional[int] = None
    reason: str = ""


class StrategySummary(BaseModel):
    """Row returned by the registry listing."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    target_symbol: str
    status: StrategyStatus
    cycle: int
    completed_cycles: int
    total_target_held: float
    average_cost_basis: Optional[float] = None
    total_realized_pnl: float = 0.0
