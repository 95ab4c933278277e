"""
Tests for session windows and breakout detection.
"""

import pytest
import sys
import os
from datetime import datetime, timezone

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from signals.models import Candle, Direction
from signals.sessions import (
    detect_trend_state,
    get_session_window,
    higher_timeframe_for,
    is_doji,
    split_sessions,
    timeframe_to_millis,
)

HOUR = 60 * 60 * 1000
BASE = 1_699_999_200_000  # кратно 15 минутам
STEP = 900_000


def ms(*args):
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def candle(open_time, o, h, l, c, v=1000.0):
    return Candle(open_time=open_time, open=o, high=h, low=l, close=c, volume=v)


class TestTimeframes:
    """Tests for timeframe parsing."""

    def test_known_timeframes(self):
        assert timeframe_to_millis("15m") == 900_000
        assert timeframe_to_millis("4h") == 4 * HOUR
        assert timeframe_to_millis("1d") == 24 * HOUR
        assert timeframe_to_millis("1w") == 7 * 24 * HOUR

    @pytest.mark.parametrize("bad", ["", "15", "15x", "h4", "0m", "1y"])
    def test_invalid_timeframe(self, bad):
        with pytest.raises(ValueError):
            timeframe_to_millis(bad)

    @pytest.mark.parametrize(
        "timeframe,higher",
        [("15m", "4h"), ("1h", "4h"), ("4h", "1d"), ("1d", "1w"), ("1w", None)],
    )
    def test_higher_timeframe(self, timeframe, higher):
        assert higher_timeframe_for(timeframe) == higher

    def test_higher_timeframe_invalid(self):
        with pytest.raises(ValueError):
            higher_timeframe_for("fast")


class TestSessionWindow:
    """Tests for get_session_window."""

    def test_4h_window_contains_now(self):
        start = ms(2024, 3, 1)
        for now in range(start, start + 3 * 24 * HOUR, 37 * 60 * 1000 + 123):
            window = get_session_window("4h", now)
            assert window.current_start <= now < window.current_start + 4 * HOUR
            assert window.prev_start == window.current_start - 4 * HOUR

    def test_15m_boundary(self):
        window = get_session_window("15m", BASE)
        assert window.current_start == BASE
        assert window.prev_start == BASE - STEP

    def test_daily_anchor_is_utc_midnight(self):
        """08:00 in UTC+8 is 00:00 UTC."""
        window = get_session_window("1d", ms(2024, 1, 2, 5, 0))

        assert window.current_start == ms(2024, 1, 2)
        assert window.prev_start == ms(2024, 1, 1)

    def test_daily_rolls_back_before_boundary(self):
        window = get_session_window("1d", ms(2024, 1, 1, 23, 59))
        assert window.current_start == ms(2024, 1, 1)

    def test_daily_exact_boundary(self):
        window = get_session_window("1d", ms(2024, 1, 2))
        assert window.current_start == ms(2024, 1, 2)

    def test_invalid_timeframe(self):
        with pytest.raises(ValueError):
            get_session_window("weekly", BASE)


class TestDoji:
    """Tests for is_doji."""

    def test_small_body(self):
        assert is_doji(candle(0, 100, 105, 95, 100.5)) is True

    def test_large_body(self):
        assert is_doji(candle(0, 96, 105, 95, 104)) is False

    def test_zero_range_is_not_doji(self):
        assert is_doji(candle(0, 100, 100, 100, 100)) is False


class TestTrendState:
    """Tests for detect_trend_state."""

    @pytest.fixture
    def previous(self):
        return candle(BASE, 100, 105, 95, 101)

    @pytest.fixture
    def now(self):
        return BASE + STEP + 1000

    def test_split_sessions(self, previous, now):
        older = candle(BASE - STEP, 99, 100, 98, 99.5)
        current = candle(BASE + STEP, 101, 102, 100, 101.5)
        prev, cur = split_sessions([older, previous, current], get_session_window("15m", now))

        assert prev == [previous]
        assert cur == [current]

    def test_bullish_breakout(self, previous, now):
        state = detect_trend_state([previous, candle(BASE + STEP, 101, 106, 96, 105)], "15m", now)

        assert state.breakout is Direction.BULLISH
        assert state.prev_session_high == 105
        assert state.session_high == 106
        assert state.last_price == 105
        assert state.is_doji_after_breakout is False

    def test_bearish_breakout(self, previous, now):
        state = detect_trend_state([previous, candle(BASE + STEP, 99, 104, 94, 95)], "15m", now)
        assert state.breakout is Direction.BEARISH

    def test_both_breakouts_bearish_wins(self, previous, now):
        state = detect_trend_state([previous, candle(BASE + STEP, 100, 106, 94, 101)], "15m", now)
        assert state.breakout is Direction.BEARISH

    def test_inside_session_no_breakout(self, previous, now):
        state = detect_trend_state([previous, candle(BASE + STEP, 100, 104, 96, 100.2)], "15m", now)

        assert state is not None
        assert state.breakout is None
        # Доджи без пробоя не отмечается
        assert state.is_doji_after_breakout is False

    def test_doji_after_breakout(self, previous, now):
        state = detect_trend_state([previous, candle(BASE + STEP, 100, 106, 96, 100.5)], "15m", now)

        assert state.breakout is Direction.BULLISH
        assert state.is_doji_after_breakout is True

    def test_missing_session_returns_none(self, previous, now):
        assert detect_trend_state([previous], "15m", now) is None
        assert detect_trend_state([candle(BASE + STEP, 100, 106, 96, 100.5)], "15m", now) is None
        assert detect_trend_state([], "15m", now) is None
