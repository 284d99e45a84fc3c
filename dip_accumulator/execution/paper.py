"""
In-memory collaborators for paper trading.

PaperExchange fills every swap at the price feed's current price, keeps
per-wallet balances, and can be told to fail upcoming calls so that the
strategy engine's failure handling can be exercised without a chain.
"""

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from ..errors import InsufficientFundsError, LiquidityError, PriceUnavailableError, TradingError
from ..models import Wallet
from .interfaces import Exchange, PriceFeed, Quote, SwapResult

logger = logging.getLogger(__name__)


class ManualPriceFeed(PriceFeed):
    """Price feed whose prices are set explicitly."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self._prices: Dict[str, float] = dict(prices or {})
        self._failures: Deque[Exception] = deque()
        self.calls = 0

    def set_price(self, token: str, price: float) -> None:
        self._prices[token] = price

    def fail_next(self, error: Exception) -> None:
        """Make the next ``current`` call raise ``error``."""
        self._failures.append(error)

    async def current(self, token: str) -> float:
        self.calls += 1
        if self._failures:
            raise self._failures.popleft()
        if token not in self._prices:
            raise PriceUnavailableError(f"No price available for {token}")
        return self._prices[token]


class PaperExchange(Exchange):
    """Simulated exchange that fills at the feed price minus a flat fee."""

    def __init__(self, price_feed: PriceFeed, fee_pct: float = 0.0,
                 track_balances: bool = False, latency_s: float = 0.0):
        """
        Args:
            price_feed: Source of fill prices, keyed by the target token.
            fee_pct: Percentage deducted from every swap's output.
            track_balances: Enforce wallet balances funded via ``fund``.
            latency_s: Artificial delay for each submission.
        """
        self.price_feed = price_feed
        self.fee_pct = fee_pct
        self.track_balances = track_balances
        self.latency_s = latency_s
        self.balances: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self.fills: list = []
        self._failures: Deque[TradingError] = deque()
        self._in_flight: Dict[str, int] = defaultdict(int)
        self.max_in_flight: Dict[str, int] = defaultdict(int)

    def fund(self, address: str, token: str, amount: float) -> None:
        self.balances[address][token] += amount

    def fail_next(self, error: TradingError) -> None:
        """Make the next buy or sell raise ``error``."""
        self._failures.append(error)

    async def quote(self, token_in: str, token_out: str, amount: float) -> Quote:
        # The feed prices only the target token; other feed failures propagate
        try:
            price_out = await self.price_feed.current(token_out)
            return Quote(expected_out=amount / price_out * self._fee_factor())
        except PriceUnavailableError:
            pass
        try:
            price_in = await self.price_feed.current(token_in)
        except PriceUnavailableError as e:
            raise LiquidityError(f"No route {token_in} -> {token_out}") from e
        return Quote(expected_out=amount * price_in * self._fee_factor())

    async def buy(self, wallet: Wallet, token_in: str, token_out: str,
                  amount_in: float, max_slippage_pct: float) -> SwapResult:
        price = await self.price_feed.current(token_out)
        amount_out = amount_in / price * self._fee_factor()
        return await self._submit(wallet, token_in, token_out, amount_in, amount_out, "buy")

    async def sell(self, wallet: Wallet, token_in: str, token_out: str,
                   amount_in: float, max_slippage_pct: float) -> SwapResult:
        price = await self.price_feed.current(token_in)
        amount_out = amount_in * price * self._fee_factor()
        return await self._submit(wallet, token_in, token_out, amount_in, amount_out, "sell")

    def _fee_factor(self) -> float:
        return 1 - self.fee_pct / 100

    async def _submit(self, wallet: Wallet, token_in: str, token_out: str,
                      amount_in: float, amount_out: float, side: str) -> SwapResult:
        address = wallet.address
        self._in_flight[address] += 1
        self.max_in_flight[address] = max(self.max_in_flight[address], self._in_flight[address])
        try:
            if self.latency_s:
                await asyncio.sleep(self.latency_s)
            if self._failures:
                raise self._failures.popleft()

            if self.track_balances:
                available = self.balances[address][token_in]
                if available + 1e-12 < amount_in:
                    raise InsufficientFundsError(
                        f"{address} holds {available} {token_in}, needs {amount_in}"
                    )
                self.balances[address][token_in] = max(0.0, available - amount_in)
                self.balances[address][token_out] += amount_out

            tx_hash = f"0x{uuid.uuid4().hex}"
            self.fills.append({
                "side": side,
                "wallet": address,
                "token_in": token_in,
                "token_out": token_out,
                "amount_in": amount_in,
                "amount_out": amount_out,
                "tx_hash": tx_hash,
            })
            logger.debug(f"Paper {side} for {address}: {amount_in} {token_in} -> {amount_out} {token_out}")
            return SwapResult(amount_out=amount_out, tx_hash=tx_hash)
        finally:
            self._in_flight[address] -= 1
