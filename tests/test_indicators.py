"""
Tests for technical indicators.
"""

import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from signals.indicators import (
    RSI,
    MACD,
    adx_series,
    atr_series,
    calculate_adx,
    calculate_atr,
    calculate_indicator_set,
    calculate_macd,
    calculate_rsi,
    detect_volume_spike,
    ema_series,
    macd_series,
    rsi_series,
)
from signals.models import Candle


def make_candles(closes, spread=1.0):
    return [
        Candle(
            open_time=i * 900_000,
            open=c,
            high=c + spread,
            low=c - spread,
            close=c,
            volume=1000.0,
        )
        for i, c in enumerate(closes)
    ]


class TestEMA:
    """Tests for ema_series."""

    def test_constant_series_converges(self):
        """EMA of a constant series equals the constant after warm-up."""
        closes = [42.5] * 60
        for period in (1, 5, 10, 20, 50, 60):
            series = ema_series(closes, period)
            assert len(series) == len(closes)
            assert all(v is None for v in series[: period - 1])
            assert all(v == pytest.approx(42.5) for v in series[period - 1:])

    def test_first_value_is_sma(self):
        """First defined EMA is the SMA, then k = 2 / (period + 1)."""
        series = ema_series([1, 2, 3, 4, 5], 3)

        assert series[:2] == [None, None]
        assert series[2] == pytest.approx(2.0)
        assert series[3] == pytest.approx(3.0)
        assert series[4] == pytest.approx(4.0)

    def test_shorter_than_period(self):
        """Input shorter than the period is all undefined, not an error."""
        assert ema_series([1, 2, 3], 5) == [None, None, None]
        assert ema_series([], 5) == []

    def test_leading_none_skipped(self):
        """Leading None values stay None and the SMA starts after them."""
        series = ema_series([None, None, 1, 2, 3], 2)

        assert series[:3] == [None, None, None]
        assert series[3] == pytest.approx(1.5)
        assert series[4] == pytest.approx(2.5)

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            ema_series([1, 2, 3], 0)


class TestRSI:
    """Tests for RSI."""

    def test_strictly_increasing_is_100(self):
        """All gains, no losses."""
        closes = [100 + i for i in range(30)]
        assert calculate_rsi(closes).value == 100.0

    def test_strictly_decreasing_is_0(self):
        """All losses, no gains."""
        closes = [100 - i for i in range(30)]
        assert calculate_rsi(closes).value == pytest.approx(0.0)

    def test_flat_series_uses_zero_loss_convention(self):
        """Zero average loss is RSI 100 even without gains."""
        assert calculate_rsi([50.0] * 20).value == 100.0

    def test_insufficient_data(self):
        assert calculate_rsi([1, 2, 3], 14) is None
        assert rsi_series([1, 2, 3], 14) == [None, None, None]

    def test_first_value_index(self):
        """First RSI sits on index ``period``."""
        closes = [100, 101, 100, 102, 101, 103, 102, 104]
        series = rsi_series(closes, 3)

        assert series[:3] == [None, None, None]
        assert all(v is not None for v in series[3:])
        assert all(0 <= v <= 100 for v in series[3:])

    def test_mixed_series_in_range(self):
        closes = [44, 44.3, 44.1, 43.6, 44.3, 44.8, 45.1, 45.4, 45.8, 46.1,
                  45.9, 46.3, 45.6, 46.3, 46.3, 46.0, 46.4, 46.2, 45.6, 46.2]
        rsi = calculate_rsi(closes)

        assert isinstance(rsi, RSI)
        assert 0 < rsi.value < 100
        assert rsi.signal in ("oversold", "overbought", "neutral")


class TestMACD:
    """Tests for MACD."""

    def test_insufficient_data_returns_none(self):
        """Fewer than slow + signal bars is undefined."""
        assert calculate_macd([100 + i for i in range(34)]) is None

    def test_enough_data(self):
        macd = calculate_macd([100 + i for i in range(35)])

        assert isinstance(macd, MACD)
        assert macd.histogram == pytest.approx(macd.macd_line - macd.signal_line)

    def test_uptrend_is_bullish(self):
        """Accelerating uptrend keeps the line above its signal."""
        closes = [100 * 1.01 ** i for i in range(60)]
        macd = calculate_macd(closes)

        assert macd.macd_line > 0
        assert macd.macd_line > macd.signal_line
        assert macd.signal == "bullish"

    def test_series_alignment(self):
        closes = [100 * 1.01 ** i for i in range(60)]
        series = macd_series(closes)

        assert len(series.line) == len(series.signal) == len(series.histogram) == 60
        assert series.line[24] is None
        assert series.line[25] is not None
        assert series.signal[32] is None
        assert series.signal[33] is not None


class TestATRADX:
    """Tests for ATR and ADX."""

    def test_atr_constant_range(self):
        """Constant true range gives the same ATR."""
        candles = make_candles([100.0] * 30, spread=1.0)
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]
        closes = [c.close for c in candles]

        series = atr_series(highs, lows, closes, 14)
        assert series[13] is None
        assert series[14] == pytest.approx(2.0)

        atr = calculate_atr(highs, lows, closes, 14)
        assert atr.value == pytest.approx(2.0)
        assert atr.percent == pytest.approx(2.0)
        assert atr.volatility == "medium"

    def test_short_series_returns_zero(self):
        highs, lows, closes = [101, 102], [99, 100], [100, 101]

        assert calculate_atr(highs, lows, closes, 14).value == 0.0
        adx = calculate_adx(highs, lows, closes, 14)
        assert adx.value == 0.0
        assert adx.plus_di == 0.0
        assert adx.minus_di == 0.0

    def test_flat_market_dx_zero(self):
        """No directional movement: DI sum is 0, so DX and ADX are 0."""
        candles = make_candles([100.0] * 40)
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]
        closes = [c.close for c in candles]

        adx = calculate_adx(highs, lows, closes, 14)
        assert adx.value == 0.0
        assert adx.trend_strength == "weak"

    def test_strong_uptrend(self):
        closes = [100 * 1.01 ** i for i in range(40)]
        highs = [c * 1.002 for c in closes]
        lows = [c * 0.998 for c in closes]

        series = adx_series(highs, lows, closes, 14)
        assert series[26] is None
        assert series[27] is not None

        adx = calculate_adx(highs, lows, closes, 14)
        assert adx.value == pytest.approx(100.0)
        assert adx.plus_di > adx.minus_di
        assert adx.trend_strength == "strong"

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            atr_series([1, 2], [1], [1, 2])


class TestVolumeSpike:
    """Tests for detect_volume_spike."""

    def test_insufficient_data(self):
        assert detect_volume_spike([100] * 5, lookback=20) is None

    def test_spike(self):
        spike = detect_volume_spike([100] * 20 + [300], threshold=2.0, lookback=20)

        assert spike.is_spike is True
        assert spike.average_volume == pytest.approx(100)
        assert spike.spike_percentage == pytest.approx(200)

    def test_no_spike(self):
        spike = detect_volume_spike([100] * 20 + [150], threshold=2.0, lookback=20)
        assert spike.is_spike is False


class TestIndicatorSet:
    """Tests for calculate_indicator_set."""

    def test_aligned_series(self):
        candles = make_candles([100 + i * 0.5 for i in range(60)])
        indicators = calculate_indicator_set(candles)

        assert set(indicators.ema) == {5, 10, 20, 50}
        for series in indicators.ema.values():
            assert len(series) == 60
        assert len(indicators.rsi) == 60
        assert len(indicators.adx) == 60
        assert len(indicators.atr) == 60
        assert indicators.latest_ema(5) > indicators.latest_ema(50)
        assert indicators.latest_macd is not None

    def test_deterministic(self):
        """Same input gives identical output."""
        candles = make_candles([100 * 1.003 ** i for i in range(80)])

        assert calculate_indicator_set(candles) == calculate_indicator_set(candles)

    def test_short_history(self):
        indicators = calculate_indicator_set(make_candles([100, 101, 102]))

        assert indicators.latest_ema(5) is None
        assert indicators.latest_rsi is None
        assert indicators.latest_adx is None
        assert indicators.latest_macd is None
