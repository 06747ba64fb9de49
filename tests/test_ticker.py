"""
Interval ticker tests.

Run with: pytest tests/test_ticker.py -v
"""

import threading
from unittest.mock import MagicMock

import pytest

from outreach.scheduler.ticker import IntervalTicker


class TestIntervalTicker:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IntervalTicker(lambda: None, interval_seconds=0)

    def test_tick_returns_callback_result(self):
        assert IntervalTicker(lambda: 42, interval_seconds=30).tick() == 42

    def test_tick_swallows_callback_errors(self):
        callback = MagicMock(side_effect=RuntimeError("boom"))
        ticker = IntervalTicker(callback, interval_seconds=30)

        assert ticker.tick() is None
        callback.assert_called_once()

    def test_runs_immediately_then_stops(self):
        ran = threading.Event()
        ticker = IntervalTicker(ran.set, interval_seconds=3600, name="test_ticker")

        ticker.start()
        try:
            assert ticker.running
            assert ran.wait(timeout=5)
        finally:
            ticker.stop(wait=True)

        assert not ticker.running

    def test_start_twice_keeps_one_scheduler(self):
        ticker = IntervalTicker(lambda: None, interval_seconds=3600, run_immediately=False)
        ticker.start()
        try:
            scheduler = ticker.scheduler
            ticker.start()
            assert ticker.scheduler is scheduler
        finally:
            ticker.stop()
