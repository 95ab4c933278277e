"""
Flagscan - Модуль сентимента

Funding imbalance, squeeze/trap кандидаты, ликвидации и сводный прогноз.
"""

from sentiment.aggregator import (
    MarketSentimentAnalyzer,
    liquidity_dominance,
    market_structure_category,
    overall_outlook,
)
from sentiment.funding import (
    classify_quadrant,
    count_quadrants,
    funding_imbalance_category,
    rank_long_trap_candidates,
    rank_short_squeeze_candidates,
)
from sentiment.liquidations import aggregate_liquidations
from sentiment.models import (
    FundingQuadrant,
    FundingSample,
    FundingStats,
    LiquidationEvent,
    LiquidationTotals,
    MarketAnalysis,
    MarketSnapshot,
    OverallOutlook,
    SentimentCategory,
    SentimentSignal,
)
from sentiment.signal_detector import detect_sentiment_signals

__all__ = [
    "FundingQuadrant",
    "FundingSample",
    "FundingStats",
    "LiquidationEvent",
    "LiquidationTotals",
    "MarketAnalysis",
    "MarketSentimentAnalyzer",
    "MarketSnapshot",
    "OverallOutlook",
    "SentimentCategory",
    "SentimentSignal",
    "aggregate_liquidations",
    "classify_quadrant",
    "count_quadrants",
    "detect_sentiment_signals",
    "funding_imbalance_category",
    "liquidity_dominance",
    "market_structure_category",
    "overall_outlook",
    "rank_long_trap_candidates",
    "rank_short_squeeze_candidates",
]
