"""
Property-based tests for the rolling high tracker.
"""

import pandas as pd
from hypothesis import given, settings, strategies as st

from dip_accumulator.price_monitor import PriceSample, RollingHighTracker


prices = st.floats(min_value=0.0001, max_value=10_000.0, allow_nan=False, allow_infinity=False)
gaps = st.integers(min_value=0, max_value=500)


class TestRollingHighProperties:
    """Property-based tests for rolling high tracking."""

    @settings(deadline=None)
    @given(
        window_ms=st.integers(min_value=1, max_value=2000),
        path=st.lists(st.tuples(gaps, prices), min_size=1, max_size=60),
    )
    def test_rolling_high_matches_naive_window_max(self, window_ms, path):
        """
        After every sample the tracked high equals the maximum price of all
        samples whose timestamp lies within ``window_ms`` of the newest one.
        """
        tracker = RollingHighTracker(window_ms)
        timestamp = 0
        seen = []

        for gap, price in path:
            timestamp += gap
            tracker.add(PriceSample(timestamp_ms=timestamp, price=price))
            seen.append((timestamp, price))

            frame = pd.DataFrame(seen, columns=["timestamp_ms", "price"])
            in_window = frame[frame["timestamp_ms"] >= timestamp - window_ms]

            assert tracker.get_high() == in_window["price"].max()
            assert len(tracker) <= len(in_window)

    @given(path=st.lists(prices, min_size=1, max_size=40))
    def test_dip_is_never_negative(self, path):
        """The current price can never be above the rolling high that includes it."""
        tracker = RollingHighTracker(window_ms=10_000)

        for i, price in enumerate(path):
            tracker.add(PriceSample(timestamp_ms=i, price=price))
            assert tracker.dip_pct(price) >= 0.0

    @given(
        start=st.integers(min_value=1000, max_value=10_000),
        earlier=st.integers(min_value=1, max_value=999),
        price=prices,
        stale_price=prices,
    )
    def test_out_of_order_samples_change_nothing(self, start, earlier, price, stale_price):
        """A sample older than the newest accepted one never alters the high."""
        tracker = RollingHighTracker(window_ms=5000)
        tracker.add(PriceSample(timestamp_ms=start, price=price))

        accepted = tracker.add(PriceSample(timestamp_ms=start - earlier, price=stale_price))

        assert accepted is False
        assert tracker.get_high() == price
