"""
Interfaces of the external collaborators the strategy engine talks to.

Key custody, transaction signing, routing and persistence formats all live
behind these classes; the engine only depends on the shapes defined here.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import StrategyState, Wallet


class Quote(BaseModel):
    """Expected output of a swap before it is submitted."""

    model_config = ConfigDict(frozen=True)

    expected_out: float = Field(ge=0.0)


class SwapResult(BaseModel):
    """Outcome of a submitted swap."""

    model_config = ConfigDict(frozen=True)

    amount_out: float = Field(gt=0.0)
    tx_hash: Optional[str] = None


class PriceFeed(ABC):
    """Source of the current price of one target unit in base units."""

    @abstractmethod
    async def current(self, token: str) -> float:
        """
        Return the price of one ``token`` unit quoted in the base asset.

        Raises PriceUnavailableError when the feed has no price for ``token``.
        """


class Exchange(ABC):
    """Swap execution against the base asset."""

    @abstractmethod
    async def quote(self, token_in: str, token_out: str, amount: float) -> Quote:
        """Quote a swap; raises LiquidityError when there is no route."""

    @abstractmethod
    async def buy(self, wallet: Wallet, token_in: str, token_out: str,
                  amount_in: float, max_slippage_pct: float) -> SwapResult:
        """
        Spend ``amount_in`` of ``token_in`` (base) on ``token_out`` (target).

        Raises:
            SlippageError, InsufficientFundsError, NetworkError
        """

    @abstractmethod
    async def sell(self, wallet: Wallet, token_in: str, token_out: str,
                   amount_in: float, max_slippage_pct: float) -> SwapResult:
        """Sell ``amount_in`` of ``token_in`` (target) for ``token_out`` (base)."""


class StrategyStore(ABC):
    """Persistence of strategy definitions together with their positions."""

    @abstractmethod
    def save(self, state: StrategyState) -> bool:
        """Persist the strategy and its position; returns False on failure."""

    @abstractmethod
    def load(self, strategy_id: str) -> Optional[StrategyState]:
        """Load a persisted strategy, or None if nothing usable is stored."""

    @abstractmethod
    def load_all(self) -> List[StrategyState]:
        """Load every persisted strategy."""

    @abstractmethod
    def delete(self, strategy_id: str) -> bool:
        """Remove a persisted strategy."""
