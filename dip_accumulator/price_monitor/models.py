"""
Data models for price monitoring.
"""

from pydantic import BaseModel, ConfigDict, Field


class PriceSample(BaseModel):
    """Price of one target unit in base units at a point in time."""

    model_config = ConfigDict(frozen=True)

    timestamp_ms: int = Field(ge=0)
    price: float = Field(gt=0.0)
