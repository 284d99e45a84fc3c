"""
Configuration models using Pydantic for validation.
"""

import hashlib
import json
import re
import uuid
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Multipliers of the base dip threshold and trade amount used when a strategy
# does not spell out its own levels.
DEFAULT_LEVEL_LADDER = [
    (1.0, 1.0, "Initial DIP buy"),
    (1.5, 1.5, "Enhanced DIP buy (1.5x)"),
    (2.0, 2.0, "Major DIP buy (2x)"),
    (3.0, 3.0, "Extreme DIP buy (3x)"),
]

DEFAULT_DIP_THRESHOLD_PCT = 15.0
DEFAULT_TRADE_AMOUNT_BASE = 0.1


def timeframe_label(milliseconds: int) -> str:
    """Human readable label for a window length, e.g. 300000 -> '5min'."""
    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:g}s"
    if seconds < 3600:
        return f"{seconds / 60:g}min"
    if seconds < 86400:
        return f"{seconds / 3600:g}hour"
    return f"{seconds / 86400:g}day"


class DipLevel(BaseModel):
    """One rung of the accumulation ladder."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    level: int = Field(ge=1)
    threshold_pct: float = Field(gt=0.0, le=100.0, description="Dip from the rolling high that arms this level")
    buy_amount_base: float = Field(gt=0.0, description="Base asset amount spent when the level fires")
    description: str = ""


class SimpleProfitConfig(BaseModel):
    """Sell the whole position once profit reaches a single target."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["simple"] = "simple"
    target_pct: float = Field(default=1.0, gt=0.0)


class RangeProfitConfig(BaseModel):
    """Sell the position in slices as profit crosses successive thresholds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["range"] = "range"
    min_pct: float = Field(gt=0.0)
    max_pct: float = Field(gt=0.0)
    steps: int = Field(default=3, ge=1, le=100)
    distribution: Literal["linear", "aggressive", "conservative"] = "linear"

    @model_validator(mode="after")
    def _check_bounds(self) -> "RangeProfitConfig":
        if self.max_pct < self.min_pct:
            raise ValueError(f"max_pct ({self.max_pct}) must be >= min_pct ({self.min_pct})")
        return self


ProfitConfig = Union[SimpleProfitConfig, RangeProfitConfig]


def stable_strategy_id(definition: Dict[str, Any]) -> str:
    """
    Derive an id for a strategy defined without one.

    The id depends only on the definition, so reloading an unchanged file
    yields the same id and persisted state stays attached to it.
    """
    label = definition.get("name") or definition.get("target_symbol") or definition.get("target_token") or "strategy"
    slug = re.sub(r"[^a-z0-9]+", "-", str(label).lower()).strip("-") or "strategy"
    digest = hashlib.sha1(json.dumps(definition, sort_keys=True, default=str).encode("utf-8")).hexdigest()[:8]
    return f"{slug}_{digest}"


class StrategyConfig(BaseModel):
    """Immutable definition of one accumulation-and-exit strategy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=lambda: f"strategy_{uuid.uuid4().hex[:12]}")
    name: str = ""
    base_token: str = Field(min_length=1, description="Token spent on buys and received on sells")
    target_token: str = Field(min_length=1, description="Token being accumulated")
    target_symbol: str = ""
    dip_threshold_pct: float = Field(
        default=DEFAULT_DIP_THRESHOLD_PCT,
        gt=0.0,
        le=100.0,
        description="Dip that arms the first level; base of the default level ladder"
    )
    dip_timeframe_ms: int = Field(default=300_000, gt=0, description="Rolling high window")
    trade_amount_base: float = Field(
        default=DEFAULT_TRADE_AMOUNT_BASE,
        gt=0.0,
        description="Base amount used to derive the default level ladder"
    )
    levels: List[DipLevel] = Field(default_factory=list)
    profit: ProfitConfig = Field(default_factory=SimpleProfitConfig, discriminator="mode")
    max_slippage_pct: float = Field(default=1.0, gt=0.0, le=50.0)
    poll_interval_ms: int = Field(default=3000, gt=0)
    stop_loss_pct: Optional[float] = Field(
        default=None,
        description="Negative: cut losses at this profit %. Positive: lock in profit once exceeded"
    )
    max_cycles: int = Field(default=0, ge=0, description="0 means unlimited")

    @model_validator(mode="before")
    @classmethod
    def _derive_levels(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        levels = data.get("levels")
        if levels:
            if "dip_threshold_pct" not in data:
                first = levels[0]
                threshold = first.get("threshold_pct") if isinstance(first, dict) else getattr(first, "threshold_pct", None)
                if threshold is not None:
                    data = dict(data, dip_threshold_pct=threshold)
            return data

        data = dict(data)
        base_threshold = float(data.get("dip_threshold_pct", DEFAULT_DIP_THRESHOLD_PCT))
        base_amount = float(data.get("trade_amount_base", DEFAULT_TRADE_AMOUNT_BASE))
        rungs = [
            (base_threshold * threshold_mult, base_amount * amount_mult, description)
            for threshold_mult, amount_mult, description in DEFAULT_LEVEL_LADDER
            if base_threshold * threshold_mult <= 100.0
        ]
        data["levels"] = [
            {
                "level": index + 1,
                "threshold_pct": threshold,
                "buy_amount_base": amount,
                "description": description,
            }
            for index, (threshold, amount, description) in enumerate(rungs)
        ]
        return data

    @model_validator(mode="after")
    def _check_levels(self) -> "StrategyConfig":
        if not self.levels:
            raise ValueError("At least one dip level is required")

        indexes = [level.level for level in self.levels]
        if len(set(indexes)) != len(indexes):
            raise ValueError(f"Dip level indexes must be unique, got {indexes}")

        thresholds = [level.threshold_pct for level in self.levels]
        if any(later <= earlier for earlier, later in zip(thresholds, thresholds[1:])):
            raise ValueError(f"Dip level thresholds must be strictly ascending, got {thresholds}")
        return self

    @property
    def display_name(self) -> str:
        return self.name or f"Strategy for {self.target_symbol or self.target_token}"

    @property
    def dip_timeframe_label(self) -> str:
        return timeframe_label(self.dip_timeframe_ms)


class EngineSettings(BaseModel):
    """Process-wide settings shared by every strategy."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    state_dir: Optional[str] = Field(default=None, description="Directory for strategy state files")
    exchange_timeout_s: float = Field(default=30.0, gt=0.0, description="Timeout for quote and swap calls")
    price_timeout_s: float = Field(default=10.0, gt=0.0, description="Timeout for price feed calls")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    """Top level layout of the YAML configuration file."""

    model_config = ConfigDict(extra="forbid")

    settings: EngineSettings = Field(default_factory=EngineSettings)
    strategies: List[StrategyConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _assign_stable_ids(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("strategies"), list):
            return data

        strategies = [
            dict(definition, id=stable_strategy_id(definition))
            if isinstance(definition, dict) and not definition.get("id")
            else definition
            for definition in data["strategies"]
        ]
        return dict(data, strategies=strategies)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "AppConfig":
        ids = [strategy.id for strategy in self.strategies]
        duplicates = sorted({strategy_id for strategy_id in ids if ids.count(strategy_id) > 1})
        if duplicates:
            raise ValueError(f"Strategy ids must be unique, got duplicates {duplicates}")
        return self
