"""
RSI pump/dump zones.

Размах RSI (максимум минус минимум) за последние ``lookback`` значений
определяет зону, направление - последнее значение против первого:

    swing >= 30          MAX ZONE
    21 <= swing <= 26    BALANCE ZONE
    1 <= swing <= 10     LOWEST ZONE

MAX ZONE gates the zone flag: MAX ZONE PUMP with a bullish EMA stack and
RSI above 50 is a bull flag, MAX ZONE DUMP with a bearish stack and RSI
below 50 is a bear flag.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from signals.flag_classifier import ema_alignment
from signals.indicators import RSI_MIDLINE, ema_series, last_value, rsi_series
from signals.models import Direction

ZONE_LOOKBACK = 14
MAX_ZONE_SWING = 30.0
BALANCE_ZONE = (21.0, 26.0)
LOWEST_ZONE = (1.0, 10.0)
ZONE_FLAG_MIN_HISTORY = 200


class RSIZone(str, Enum):
    """Зона pump/dump по размаху RSI."""

    MAX_PUMP = "MAX ZONE PUMP"
    MAX_DUMP = "MAX ZONE DUMP"
    BALANCE_PUMP = "BALANCE ZONE PUMP"
    BALANCE_DUMP = "BALANCE ZONE DUMP"
    LOWEST_PUMP = "LOWEST ZONE PUMP"
    LOWEST_DUMP = "LOWEST ZONE DUMP"
    NO_STRONG_SIGNAL = "NO STRONG SIGNAL"
    NO_DATA = "NO DATA"


@dataclass(frozen=True)
class RSISwing:
    """
    RSI movement over the recent window.

    Attributes:
        recent_high: Highest RSI in the window
        recent_low: Lowest RSI in the window
        swing: recent_high - recent_low
        direction: BULLISH (pump) if RSI ended above where it started,
            BEARISH (dump) if below, None if unchanged
        change: Absolute change from the first to the last value
    """

    recent_high: float
    recent_low: float
    swing: float
    direction: Optional[Direction]
    change: float


def recent_rsi_swing(rsi: Sequence[Optional[float]], lookback: int = ZONE_LOOKBACK) -> Optional[RSISwing]:
    """
    Размах RSI за последние ``lookback`` значений.

    Returns:
        RSISwing, or None when the window is shorter than ``lookback`` or
        still inside the RSI warm-up
    """
    if lookback <= 0:
        raise ValueError(f"lookback must be positive, got {lookback}")
    if len(rsi) < lookback:
        return None

    window = list(rsi[-lookback:])
    if any(v is None for v in window):
        return None

    start, end = window[0], window[-1]
    if end > start:
        direction: Optional[Direction] = Direction.BULLISH
    elif end < start:
        direction = Direction.BEARISH
    else:
        direction = None

    recent_high = max(window)
    recent_low = min(window)
    return RSISwing(
        recent_high=recent_high,
        recent_low=recent_low,
        swing=recent_high - recent_low,
        direction=direction,
        change=abs(end - start),
    )


def classify_rsi_zone(
    rsi: Sequence[Optional[float]],
    lookback: int = ZONE_LOOKBACK,
    max_swing: float = MAX_ZONE_SWING,
) -> RSIZone:
    """
    Зона pump/dump по серии RSI.

    MAX ZONE is checked first, then BALANCE, then LOWEST; a flat RSI or a
    swing between the bands gives NO STRONG SIGNAL.
    """
    swing = recent_rsi_swing(rsi, lookback)
    if swing is None:
        return RSIZone.NO_DATA

    pump = swing.direction is Direction.BULLISH
    dump = swing.direction is Direction.BEARISH
    value = swing.swing

    if value >= max_swing:
        if pump:
            return RSIZone.MAX_PUMP
        if dump:
            return RSIZone.MAX_DUMP
    if BALANCE_ZONE[0] <= value <= BALANCE_ZONE[1]:
        if pump:
            return RSIZone.BALANCE_PUMP
        if dump:
            return RSIZone.BALANCE_DUMP
    if LOWEST_ZONE[0] <= value <= LOWEST_ZONE[1]:
        if pump:
            return RSIZone.LOWEST_PUMP
        if dump:
            return RSIZone.LOWEST_DUMP
    return RSIZone.NO_STRONG_SIGNAL


def detect_zone_flag(
    closes: Sequence[float],
    ema_periods: Sequence[int] = (5, 10, 20, 50),
    rsi_period: int = 14,
    lookback: int = ZONE_LOOKBACK,
    max_swing: float = MAX_ZONE_SWING,
    min_history: int = ZONE_FLAG_MIN_HISTORY,
    rsi: Optional[Sequence[Optional[float]]] = None,
) -> Optional[Direction]:
    """
    Флаг по MAX ZONE.

    Args:
        closes: Цены закрытия по возрастанию времени
        ema_periods: EMA stack, fastest first
        rsi_period: Период RSI
        lookback: Окно размаха RSI
        max_swing: Порог MAX ZONE
        min_history: Minimum number of closes
        rsi: Precomputed RSI series for ``closes``

    Returns:
        BULLISH / BEARISH flag direction, or None
    """
    if len(closes) < min_history:
        return None
    if rsi is None:
        rsi = rsi_series(closes, rsi_period)

    zone = classify_rsi_zone(rsi, lookback, max_swing)
    if zone not in (RSIZone.MAX_PUMP, RSIZone.MAX_DUMP):
        return None

    last_rsi = last_value(rsi)
    if last_rsi is None:
        return None
    stack = ema_alignment([last_value(ema_series(closes, p)) for p in ema_periods])

    if zone is RSIZone.MAX_PUMP and stack is Direction.BULLISH and last_rsi > RSI_MIDLINE:
        return Direction.BULLISH
    if zone is RSIZone.MAX_DUMP and stack is Direction.BEARISH and last_rsi < RSI_MIDLINE:
        return Direction.BEARISH
    return None
