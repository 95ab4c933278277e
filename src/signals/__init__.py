"""
Flagscan - Модуль сигналов

Индикаторы, сессионные пробои, флаговые сигналы, RSI зоны, структура
рынка, дивергенция 24h и бэктест.
"""

from signals.backtest import BacktestReport, BacktestSimulator, simulate_trade
from signals.divergence import DivergenceResult, analyze_diverging_24h
from signals.flag_classifier import (
    FlagClassifier,
    FlagInputs,
    FlagSetup,
    combine_with_funding,
)
from signals.indicators import (
    IndicatorSet,
    calculate_indicator_set,
    ema_series,
    macd_series,
    rsi_series,
)
from signals.market_structure import (
    MainTrend,
    SymbolStructure,
    analyze_structure,
    count_market_stats,
    detect_main_trend,
    highest_volume_color,
)
from signals.models import (
    BacktestOutcome,
    Candle,
    Direction,
    FlagSignal,
    MarketStats,
    SessionWindow,
    SignalStrength,
    TrendState,
)
from signals.rsi_zones import RSIZone, classify_rsi_zone, detect_zone_flag
from signals.sessions import detect_trend_state, get_session_window, higher_timeframe_for

__all__ = [
    "BacktestOutcome",
    "BacktestReport",
    "BacktestSimulator",
    "Candle",
    "Direction",
    "DivergenceResult",
    "FlagClassifier",
    "FlagInputs",
    "FlagSetup",
    "FlagSignal",
    "IndicatorSet",
    "MainTrend",
    "MarketStats",
    "RSIZone",
    "SessionWindow",
    "SignalStrength",
    "SymbolStructure",
    "TrendState",
    "analyze_diverging_24h",
    "analyze_structure",
    "calculate_indicator_set",
    "classify_rsi_zone",
    "combine_with_funding",
    "count_market_stats",
    "detect_main_trend",
    "detect_trend_state",
    "detect_zone_flag",
    "ema_series",
    "get_session_window",
    "highest_volume_color",
    "higher_timeframe_for",
    "macd_series",
    "rsi_series",
    "simulate_trade",
]
