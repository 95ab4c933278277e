"""
Структура рынка по инструменту.

Main trend from EMA70 against EMA200 (price above is support, below is
resistance), the colour of the highest-volume candle of the previous
session and the RSI pump/dump zone with its flag.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from config import Settings, get_settings
from signals.indicators import ema_series, last_value, rsi_series
from signals.models import Candle, Direction, MarketStats
from signals.rsi_zones import RSIZone, classify_rsi_zone, detect_zone_flag
from signals.sessions import get_session_window, split_sessions

logger = logging.getLogger(__name__)

SUPPORT = "support"
RESISTANCE = "resistance"
NO_LEVEL = "none"


@dataclass(frozen=True)
class MainTrend:
    """
    Основной тренд.

    Attributes:
        direction: BULLISH when the fast EMA is above the slow one,
            BEARISH when below, None when equal or not enough history
        level: "support", "resistance" or "none"
        ema_fast: Last fast EMA
        ema_slow: Last slow EMA
    """

    direction: Optional[Direction]
    level: str
    ema_fast: Optional[float]
    ema_slow: Optional[float]


@dataclass(frozen=True)
class SymbolStructure:
    """Структура одного инструмента."""

    symbol: str
    zone: RSIZone
    zone_flag: Optional[Direction]
    main_trend: MainTrend
    highest_volume_prev: Optional[Direction]


def detect_main_trend(closes: Sequence[float], fast: int = 70, slow: int = 200) -> MainTrend:
    """EMA ``fast`` против EMA ``slow`` по последним значениям."""
    if fast >= slow:
        raise ValueError(f"fast period must be below slow period, got {fast} and {slow}")

    ema_fast = last_value(ema_series(closes, fast))
    ema_slow = last_value(ema_series(closes, slow))
    if ema_fast is None or ema_slow is None:
        return MainTrend(direction=None, level=NO_LEVEL, ema_fast=ema_fast, ema_slow=ema_slow)

    if ema_fast > ema_slow:
        return MainTrend(Direction.BULLISH, SUPPORT, ema_fast, ema_slow)
    if ema_fast < ema_slow:
        return MainTrend(Direction.BEARISH, RESISTANCE, ema_fast, ema_slow)
    return MainTrend(None, NO_LEVEL, ema_fast, ema_slow)


def highest_volume_color(candles: Sequence[Candle]) -> Optional[Direction]:
    """
    Colour of the highest-volume candle.

    Ties go to the earliest candle. Close above open is green (BULLISH),
    anything else red (BEARISH).
    """
    if not candles:
        return None
    top = candles[0]
    for candle in candles[1:]:
        if candle.volume > top.volume:
            top = candle
    return Direction.BULLISH if top.close > top.open else Direction.BEARISH


def analyze_structure(
    symbol: str,
    candles: Sequence[Candle],
    timeframe: str,
    now_ms: int,
    settings: Optional[Settings] = None,
) -> SymbolStructure:
    """
    Структура инструмента по его свечам.

    Args:
        symbol: Символ
        candles: Свечи по возрастанию open_time
        timeframe: Session timeframe
        now_ms: Evaluation time (ms, UTC)
        settings: Настройки (по умолчанию глобальные)

    Returns:
        SymbolStructure
    """
    s = settings or get_settings()
    closes = [c.close for c in candles]
    rsi = rsi_series(closes, s.rsi_period)

    window = get_session_window(
        timeframe, now_ms, s.daily_session_utc_offset_hours, s.daily_session_anchor_hour
    )
    previous, _ = split_sessions(candles, window)

    structure = SymbolStructure(
        symbol=symbol,
        zone=classify_rsi_zone(rsi, s.rsi_zone_lookback, s.rsi_max_zone_swing),
        zone_flag=detect_zone_flag(
            closes,
            ema_periods=s.ema_periods,
            rsi_period=s.rsi_period,
            lookback=s.rsi_zone_lookback,
            max_swing=s.rsi_max_zone_swing,
            min_history=s.zone_flag_min_history,
            rsi=rsi,
        ),
        main_trend=detect_main_trend(closes, s.main_trend_fast, s.main_trend_slow),
        highest_volume_prev=highest_volume_color(previous),
    )
    logger.debug(f"{symbol} {timeframe}: {structure.zone.value}, main trend {structure.main_trend.level}")
    return structure


def count_market_stats(structures: Iterable[SymbolStructure]) -> MarketStats:
    """Сводные счётчики по всем инструментам."""
    stats = MarketStats()
    for item in structures:
        if item.highest_volume_prev is Direction.BULLISH:
            stats.green_volume += 1
        elif item.highest_volume_prev is Direction.BEARISH:
            stats.red_volume += 1

        if item.main_trend.direction is Direction.BULLISH:
            stats.bullish_trend += 1
        elif item.main_trend.direction is Direction.BEARISH:
            stats.bearish_trend += 1

        if item.zone is RSIZone.MAX_PUMP:
            stats.max_pump_zone += 1
        elif item.zone is RSIZone.MAX_DUMP:
            stats.max_dump_zone += 1

        if item.zone_flag is Direction.BULLISH:
            stats.bull_flags += 1
        elif item.zone_flag is Direction.BEARISH:
            stats.bear_flags += 1
    return stats
