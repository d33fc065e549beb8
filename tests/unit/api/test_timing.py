"""
Tests for request latency tracking.
"""

import pytest

from souq.api.middleware.timing import LatencyTracker, request_area


@pytest.mark.parametrize(
    "path,area",
    [
        ("/api/v1/products/amina-dates-1kg", "products"),
        ("/api/v1/ledger/blocks", "ledger"),
        ("/api/v1/agents/buyer-fatima/buy", "agents"),
        ("/api/v1/messages/stats", "messages"),
        ("/health", "health"),
        ("/status", "health"),
        ("/", "other"),
        ("/api/v1/unknown", "other"),
    ],
)
def test_request_area(path, area):
    assert request_area(path) == area


class TestLatencyTracker:
    def test_empty(self):
        stats = LatencyTracker().get_stats("products")

        assert stats == {"count": 0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "max": 0.0}

    def test_percentiles_per_area(self):
        tracker = LatencyTracker()
        for ms in range(1, 101):
            tracker.record(float(ms), "products")
        tracker.record(900.0, "agents")

        products = tracker.get_stats("products")
        assert products["count"] == 100
        assert products["p50"] == 51.0
        assert products["p95"] == 96.0
        assert products["max"] == 100.0

        assert tracker.get_stats()["count"] == 101
        assert tracker.get_stats()["max"] == 900.0
        assert set(tracker.by_area()) == {"agents", "products"}

    def test_window_is_bounded(self):
        tracker = LatencyTracker(window_size=3)
        for ms in (500.0, 1.0, 2.0, 3.0):
            tracker.record(ms, "ledger")

        assert tracker.get_stats("ledger")["max"] == 3.0

    def test_reset(self):
        tracker = LatencyTracker()
        tracker.record(5.0)
        tracker.reset()

        assert tracker.by_area() == {}
