"""
Rolling high tracking over a trailing time window.
"""

import logging
from collections import deque
from typing import Deque, Optional

from .models import PriceSample


logger = logging.getLogger(__name__)


class RollingHighTracker:
    """
    Maintains the maximum price observed within the last ``window_ms``.

    Samples are kept in a deque whose prices strictly decrease from front to
    back. A new sample first evicts expired entries from the front, then drops
    every entry at the back that it dominates, so the front is always the
    window maximum and each sample is pushed and popped at most once.

    Samples must arrive in timestamp order. A late sample older than the
    newest accepted one is ignored, so a delayed quote that would have been
    the window maximum never shows up in ``get_high``.
    """

    def __init__(self, window_ms: int):
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        self.window_ms = window_ms
        self._samples: Deque[PriceSample] = deque()
        self._latest_ms: Optional[int] = None

    def add(self, sample: PriceSample) -> bool:
        """
        Feed a sample into the window.

        Args:
            sample: Price sample to add.

        Returns:
            False if the sample was older than the newest accepted one and
            therefore ignored, True otherwise.
        """
        if self._latest_ms is not None and sample.timestamp_ms < self._latest_ms:
            logger.warning(
                f"Ignoring out-of-order price sample at {sample.timestamp_ms} "
                f"(latest {self._latest_ms})"
            )
            return False

        self._latest_ms = sample.timestamp_ms
        self._evict(sample.timestamp_ms)

        while self._samples and self._samples[-1].price <= sample.price:
            self._samples.pop()
        self._samples.append(sample)
        return True

    def get_high(self, now_ms: Optional[int] = None) -> Optional[float]:
        """
        Highest price in the window, or None if no sample is in the window.

        Args:
            now_ms: Optional clock reading used to expire samples before
                answering; defaults to the newest sample's timestamp.
        """
        if now_ms is not None:
            self._evict(now_ms)
        if not self._samples:
            return None
        return self._samples[0].price

    def dip_pct(self, current_price: float, now_ms: Optional[int] = None) -> Optional[float]:
        """Percentage drop of ``current_price`` below the rolling high."""
        high = self.get_high(now_ms)
        if high is None:
            return None
        return (high - current_price) / high * 100

    def reset(self) -> None:
        self._samples.clear()
        self._latest_ms = None

    def __len__(self) -> int:
        return len(self._samples)

    def _evict(self, now_ms: int) -> None:
        cutoff = now_ms - self.window_ms
        while self._samples and self._samples[0].timestamp_ms < cutoff:
            self._samples.popleft()
