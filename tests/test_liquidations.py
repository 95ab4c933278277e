"""
Tests for liquidation aggregation.
"""

import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from sentiment.liquidations import aggregate_liquidations
from sentiment.models import LiquidationEvent


@pytest.fixture
def events():
    return [
        LiquidationEvent("BTCUSDT", "SELL", price=100.0, quantity=2.0, timestamp=1_000),
        LiquidationEvent("ETHUSDT", "BUY", price=50.0, quantity=1.0, timestamp=2_000),
        LiquidationEvent("SOLUSDT", "sell", price=10.0, quantity=3.0, timestamp=3_000),
    ]


class TestAggregateLiquidations:
    """Tests for aggregate_liquidations."""

    def test_sides(self, events):
        totals = aggregate_liquidations(events)

        assert totals.long_usd == pytest.approx(230.0)
        assert totals.short_usd == pytest.approx(50.0)
        assert totals.long_count == 2
        assert totals.short_count == 1
        assert totals.total_usd == pytest.approx(280.0)

    def test_since_filter(self, events):
        totals = aggregate_liquidations(events, since_ms=2_000)

        assert totals.long_usd == pytest.approx(30.0)
        assert totals.short_usd == pytest.approx(50.0)

    def test_unknown_side_ignored(self):
        totals = aggregate_liquidations([LiquidationEvent("BTCUSDT", "HOLD", 1.0, 1.0, 0)])
        assert totals.total_usd == 0.0

    def test_empty(self):
        totals = aggregate_liquidations([])

        assert totals.total_usd == 0.0
        assert totals.long_count == 0
