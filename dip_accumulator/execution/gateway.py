"""
Timeout-bounded, wallet-serialized access to the exchange and price feed.
"""

import asyncio
import logging
from typing import Awaitable, Dict, TypeVar

from ..config.models import StrategyConfig
from ..errors import LiquidityError, NetworkError
from ..models import Wallet
from .interfaces import Exchange, PriceFeed, SwapResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TradeGateway:
    """
    Front door for every external call a strategy makes.

    Each call is bounded by a timeout; a timeout surfaces as NetworkError so
    the controller treats it like any other recoverable failure. Submissions
    for the same wallet address are serialized with one lock per address,
    since strategies sharing a wallet would otherwise race on its nonce.
    """

    def __init__(self, exchange: Exchange, price_feed: PriceFeed,
                 exchange_timeout_s: float = 30.0, price_timeout_s: float = 10.0):
        self.exchange = exchange
        self.price_feed = price_feed
        self.exchange_timeout_s = exchange_timeout_s
        self.price_timeout_s = price_timeout_s
        self._wallet_locks: Dict[str, asyncio.Lock] = {}

    def wallet_lock(self, address: str) -> asyncio.Lock:
        """Lock guarding on-chain submissions for ``address``."""
        key = address.lower()
        lock = self._wallet_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._wallet_locks[key] = lock
        return lock

    async def current_price(self, token: str) -> float:
        """Fetch the current price of one ``token`` unit in base units."""
        price = await self._call(self.price_feed.current(token), self.price_timeout_s, f"price of {token}")
        if price is None or price <= 0:
            raise NetworkError(f"Price feed returned invalid price {price!r} for {token}")
        return float(price)

    async def buy(self, wallet: Wallet, config: StrategyConfig, amount_base: float) -> SwapResult:
        """Quote and submit a buy of the strategy's target token."""
        async with self.wallet_lock(wallet.address):
            quote = await self._call(
                self.exchange.quote(config.base_token, config.target_token, amount_base),
                self.exchange_timeout_s,
                "buy quote",
            )
            if quote.expected_out <= 0:
                raise LiquidityError(
                    f"No liquidity for {amount_base} {config.base_token} -> {config.target_token}"
                )
            logger.debug(f"Buy quote for {config.id}: {amount_base} base -> {quote.expected_out} target")
            return await self._call(
                self.exchange.buy(wallet, config.base_token, config.target_token,
                                  amount_base, config.max_slippage_pct),
                self.exchange_timeout_s,
                "buy",
            )

    async def sell(self, wallet: Wallet, config: StrategyConfig, amount_target: float) -> SwapResult:
        """Quote and submit a sell of the strategy's target token."""
        async with self.wallet_lock(wallet.address):
            quote = await self._call(
                self.exchange.quote(config.target_token, config.base_token, amount_target),
                self.exchange_timeout_s,
                "sell quote",
            )
            if quote.expected_out <= 0:
                raise LiquidityError(
                    f"No liquidity for {amount_target} {config.target_token} -> {config.base_token}"
                )
            logger.debug(f"Sell quote for {config.id}: {amount_target} target -> {quote.expected_out} base")
            return await self._call(
                self.exchange.sell(wallet, config.target_token, config.base_token,
                                   amount_target, config.max_slippage_pct),
                self.exchange_timeout_s,
                "sell",
            )

    async def _call(self, awaitable: Awaitable[T], timeout_s: float, what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timed out after {timeout_s:.1f}s waiting for {what}") from e
