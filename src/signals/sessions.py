"""
Session windows and breakout detection.

Intraday sessions are floor-aligned windows of the timeframe length. The
daily session starts at 08:00 in UTC+8 (00:00 UTC) and rolls back one day
when ``now`` is before today's boundary.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from signals.models import Candle, Direction, SessionWindow, TrendState

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS

DAILY_TIMEFRAME = "1d"
DOJI_BODY_RATIO = 0.2

_TIMEFRAME_UNITS = {
    "m": MINUTE_MS,
    "h": HOUR_MS,
    "d": DAY_MS,
    "w": WEEK_MS,
}
_TIMEFRAME_RE = re.compile(r"^(\d+)([mhdw])$")

# Старший таймфрейм для подтверждения тренда
HIGHER_TIMEFRAMES = {
    "1m": "15m",
    "3m": "15m",
    "5m": "1h",
    "15m": "4h",
    "30m": "4h",
    "1h": "4h",
    "2h": "1d",
    "4h": "1d",
    "6h": "1d",
    "8h": "1d",
    "12h": "1d",
    "1d": "1w",
}


def timeframe_to_millis(timeframe: str) -> int:
    """
    Convert a timeframe string ("15m", "4h", "1d") to milliseconds.

    Raises:
        ValueError: if the timeframe is not of the form ``<n>m``, ``<n>h``, ``<n>d`` or ``<n>w``
    """
    match = _TIMEFRAME_RE.match(timeframe)
    if not match or int(match.group(1)) == 0:
        raise ValueError(f"Invalid timeframe: {timeframe!r}")
    return int(match.group(1)) * _TIMEFRAME_UNITS[match.group(2)]


def higher_timeframe_for(timeframe: str) -> Optional[str]:
    """Next timeframe up used for trend confirmation (15m -> 4h, 4h -> 1d), or None."""
    timeframe_to_millis(timeframe)
    return HIGHER_TIMEFRAMES.get(timeframe)


def get_session_window(
    timeframe: str,
    now_ms: int,
    utc_offset_hours: int = 8,
    anchor_hour: int = 8,
) -> SessionWindow:
    """
    Start of the current and previous session for ``timeframe`` at ``now_ms``.

    Args:
        timeframe: Candle timeframe
        now_ms: Current time (ms, UTC)
        utc_offset_hours: Offset of the daily-session reference zone
        anchor_hour: Local hour the daily session starts at

    Returns:
        SessionWindow
    """
    tf_ms = timeframe_to_millis(timeframe)

    if timeframe == DAILY_TIMEFRAME:
        offset_ms = utc_offset_hours * HOUR_MS
        local_midnight = ((now_ms + offset_ms) // DAY_MS) * DAY_MS
        current_start = local_midnight + anchor_hour * HOUR_MS - offset_ms
        if now_ms < current_start:
            current_start -= DAY_MS
    else:
        current_start = (now_ms // tf_ms) * tf_ms

    return SessionWindow(current_start=current_start, prev_start=current_start - tf_ms)


def split_sessions(
    candles: Sequence[Candle], window: SessionWindow
) -> Tuple[List[Candle], List[Candle]]:
    """Partition candles into (previous session, current session) by open_time."""
    previous = [c for c in candles if window.prev_start <= c.open_time < window.current_start]
    current = [c for c in candles if c.open_time >= window.current_start]
    return previous, current


def is_doji(candle: Candle, body_ratio: float = DOJI_BODY_RATIO) -> bool:
    """Body smaller than ``body_ratio`` of the full range; a zero range is not a doji."""
    total_range = candle.range
    return total_range > 0 and (candle.body / total_range) < body_ratio


def detect_trend_state(
    candles: Sequence[Candle],
    timeframe: str,
    now_ms: int,
    body_ratio: float = DOJI_BODY_RATIO,
    utc_offset_hours: int = 8,
    anchor_hour: int = 8,
) -> Optional[TrendState]:
    """
    Breakout of the current session against the previous one.

    A new high over the previous session is bullish, a new low under it is
    bearish. When both happen in the same session the bearish breakout wins.

    Returns:
        TrendState, or None if either session has no candles
    """
    window = get_session_window(timeframe, now_ms, utc_offset_hours, anchor_hour)
    previous, current = split_sessions(candles, window)

    if not previous or not current:
        logger.debug(
            f"No session data for {timeframe}: prev={len(previous)} current={len(current)}"
        )
        return None

    prev_high = max(c.high for c in previous)
    prev_low = min(c.low for c in previous)
    session_high = max(c.high for c in current)
    session_low = min(c.low for c in current)
    last_candle = current[-1]

    breakout: Optional[Direction] = None
    if session_high > prev_high:
        breakout = Direction.BULLISH
    if session_low < prev_low:
        breakout = Direction.BEARISH

    return TrendState(
        breakout=breakout,
        is_doji_after_breakout=breakout is not None and is_doji(last_candle, body_ratio),
        prev_session_high=prev_high,
        prev_session_low=prev_low,
        session_high=session_high,
        session_low=session_low,
        last_price=last_candle.close,
    )
