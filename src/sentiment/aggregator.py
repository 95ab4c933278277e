"""
Sentiment Aggregator - сводный рыночный сентимент.

Каждая категория даёт оценку 0-10. Итоговая оценка - среднее по
присутствующим категориям (категории без данных пропускаются, а не
считаются нулём), округлённое до 2 знаков.

Диапазоны итоговой оценки:
    >= 7.5  Strongly Bullish
    >= 6.0  Moderately Bullish
    >= 4.5  Neutral/Volatile
    >= 3.0  Moderately Bearish
    иначе   Strongly Bearish
"""

from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from config import Settings, get_settings
from sentiment.funding import (
    long_trap_candidates_category,
    squeeze_candidates_category,
    summarize_funding,
)
from sentiment.liquidations import aggregate_liquidations
from sentiment.models import (
    FundingStats,
    LiquidationEvent,
    LiquidationTotals,
    MarketAnalysis,
    MarketSnapshot,
    OverallOutlook,
    SentimentCategory,
    SentimentSignal,
)
from sentiment.signal_detector import BEARISH_RISK, BULLISH_OPPORTUNITY, detect_sentiment_signals
from signals.models import Direction, FlagSignal, MarketStats, SignalStrength

logger = structlog.get_logger()

NEUTRAL_SCORE = 5.0

BULLISH_KEYWORDS = ("bullish", "gain", "rise", "surge", "breakout")
BEARISH_KEYWORDS = ("bearish", "fall", "drop", "crash", "sell-off")

# Вес силы флага для категории импульса
STRENGTH_WEIGHTS = {
    SignalStrength.STRONG: 3,
    SignalStrength.MEDIUM: 2,
    SignalStrength.WEAK: 1,
    SignalStrength.NONE: 0,
}

OUTLOOK_BANDS = [
    (
        7.5,
        "Strongly Bullish",
        "Consider aggressive long positions with tight risk management. Focus on strong fundamental projects.",
    ),
    (
        6.0,
        "Moderately Bullish",
        "Cautiously seek long opportunities, consider consolidating positions. Monitor key resistance levels.",
    ),
    (
        4.5,
        "Neutral/Volatile",
        "Market is indecisive. Consider range trading or wait for clearer signals. High volatility is possible.",
    ),
    (
        3.0,
        "Moderately Bearish",
        "Consider shorting opportunities or reducing long exposure. Monitor key support levels carefully.",
    ),
]
STRONGLY_BEARISH = (
    "Strongly Bearish",
    "Favor short positions or remain in cash. Protect capital as further downside is likely.",
)


def general_bias(green: int, red: int) -> Optional[SentimentCategory]:
    """Соотношение растущих и падающих инструментов."""
    if green == 0 and red == 0:
        return None
    if green > red * 1.5:
        return SentimentCategory(
            "Strongly Bullish",
            "Significantly more pairs are showing positive 24h price change.",
            8.5,
        )
    if red > green * 1.5:
        return SentimentCategory(
            "Strongly Bearish",
            "Significantly more pairs are showing negative 24h price change.",
            2.5,
        )
    if green > red:
        return SentimentCategory("Slightly Bullish", "More pairs are showing positive 24h price change.", 6.5)
    if red > green:
        return SentimentCategory("Slightly Bearish", "More pairs are showing negative 24h price change.", 4.5)
    return SentimentCategory("Neutral", "Even split between positive and negative price changes.", 5.0)


def volume_sentiment(
    snapshots: Sequence[MarketSnapshot], strong_volume: float = 100_000_000
) -> Optional[SentimentCategory]:
    """Куда идёт крупный объём: в растущие или в падающие инструменты."""
    if not snapshots:
        return None
    bullish = sum(1 for s in snapshots if s.price_change_percent > 0 and s.volume > strong_volume)
    bearish = sum(1 for s in snapshots if s.price_change_percent < 0 and s.volume > strong_volume)

    if bullish > bearish * 2:
        return SentimentCategory(
            "Strong Bullish Volume",
            "Significant volume flowing into rising assets, confirming upward momentum.",
            7.5,
        )
    if bearish > bullish * 2:
        return SentimentCategory(
            "Strong Bearish Volume",
            "Significant volume flowing out of falling assets, confirming downward momentum.",
            3.5,
        )
    return SentimentCategory(
        "Mixed Volume",
        "Volume distribution is relatively balanced or not indicative of a strong trend.",
        5.0,
    )


def liquidation_sentiment(totals: Optional[LiquidationTotals]) -> Optional[SentimentCategory]:
    """Перекос ликвидаций: лонги (давление вниз) или шорты (давление вверх)."""
    if totals is None:
        return None
    total = totals.total_usd
    if total <= 0:
        return SentimentCategory(
            "No Recent Liquidations",
            "No significant liquidation events observed recently.",
            5.0,
        )

    long_ratio = totals.long_usd / total
    short_ratio = totals.short_usd / total
    if long_ratio > 0.7:
        return SentimentCategory(
            "Heavy Long Liquidations",
            f"A significant amount of long positions ({long_ratio:.0%}) are being liquidated, "
            "indicating strong downward pressure.",
            1.5,
        )
    if short_ratio > 0.7:
        return SentimentCategory(
            "Heavy Short Liquidations",
            f"A significant amount of short positions ({short_ratio:.0%}) are being liquidated, "
            "indicating strong upward pressure or short squeezes.",
            8.5,
        )
    return SentimentCategory(
        "Mixed Liquidations",
        "Liquidation volume is relatively balanced between long and short positions, or overall volume is low.",
        5.0,
    )


def news_sentiment(headlines: Optional[Iterable[str]]) -> Optional[SentimentCategory]:
    """Keyword count over news headlines."""
    if headlines is None:
        return None
    headlines = list(headlines)
    if not headlines:
        return None

    positive = 0
    negative = 0
    for title in headlines:
        title = title.lower()
        if any(word in title for word in BULLISH_KEYWORDS):
            positive += 1
        if any(word in title for word in BEARISH_KEYWORDS):
            negative += 1

    if positive > negative * 2:
        return SentimentCategory(
            "Bullish News",
            "Recent news headlines are predominantly positive, likely supporting upward price action.",
            8.0,
        )
    if negative > positive * 2:
        return SentimentCategory(
            "Bearish News",
            "Recent news headlines are predominantly negative, likely contributing to downward price action.",
            3.0,
        )
    if positive > negative:
        return SentimentCategory(
            "Slightly Bullish News",
            "More positive news than negative, suggesting a mild positive sentiment from headlines.",
            6.0,
        )
    if negative > positive:
        return SentimentCategory(
            "Slightly Bearish News",
            "More negative news than positive, suggesting a mild negative sentiment from headlines.",
            4.0,
        )
    return SentimentCategory("Neutral News", "News sentiment is balanced or indecisive.", 5.0)


def actionable_signal_summary(signals: Sequence[SentimentSignal]) -> Optional[SentimentCategory]:
    """Bullish Opportunity против Bearish Risk."""
    if not signals:
        return None
    bullish = sum(1 for s in signals if s.signal == BULLISH_OPPORTUNITY)
    bearish = sum(1 for s in signals if s.signal == BEARISH_RISK)

    if bullish > bearish:
        return SentimentCategory(
            "Bullish",
            f"Market shows more bullish opportunities ({bullish}) than bearish risks ({bearish}).",
            7.0,
        )
    if bearish > bullish:
        return SentimentCategory(
            "Bearish",
            f"Market shows more bearish risks ({bearish}) than bullish opportunities ({bullish}).",
            3.0,
        )
    return SentimentCategory(
        "Neutral",
        f"Bullish opportunities and bearish risks are balanced ({bullish} each).",
        5.0,
    )


def flag_momentum_category(flags: Optional[Sequence[FlagSignal]]) -> Optional[SentimentCategory]:
    """
    Momentum from the current flag signals, weighted by strength.

    Strong = 3, Medium = 2, Weak = 1; flags graded None do not count.
    """
    if not flags:
        return None
    bull = sum(STRENGTH_WEIGHTS[f.strength] for f in flags if f.direction is Direction.BULLISH)
    bear = sum(STRENGTH_WEIGHTS[f.strength] for f in flags if f.direction is Direction.BEARISH)
    if bull == 0 and bear == 0:
        return None

    if bull > bear * 2:
        return SentimentCategory(
            "Strong Bullish Momentum",
            f"Bull flags dominate (weight {bull} vs {bear}).",
            7.5,
        )
    if bear > bull * 2:
        return SentimentCategory(
            "Strong Bearish Momentum",
            f"Bear flags dominate (weight {bear} vs {bull}).",
            2.5,
        )
    if bull > bear:
        return SentimentCategory("Slightly Bullish Momentum", f"More bull flags (weight {bull} vs {bear}).", 6.0)
    if bear > bull:
        return SentimentCategory("Slightly Bearish Momentum", f"More bear flags (weight {bear} vs {bull}).", 4.0)
    return SentimentCategory("Mixed Momentum", f"Bull and bear flags are balanced (weight {bull}).", 5.0)


def liquidity_dominance(snapshots: Sequence[MarketSnapshot]) -> Optional[SentimentCategory]:
    """
    Green/red liquidity: 24h volume of rising instruments against falling ones.

    Unchanged instruments count as green.
    """
    green = sum(s.volume for s in snapshots if s.price_change_percent >= 0)
    red = sum(s.volume for s in snapshots if s.price_change_percent < 0)
    if green + red <= 0:
        return None

    share = green / (green + red)
    if green > red * 2:
        return SentimentCategory(
            "Strong Bullish Liquidity (Green)",
            f"Most of the traded volume ({share:.0%}) is in rising instruments.",
            7.5,
        )
    if red > green * 2:
        return SentimentCategory(
            "Strong Bearish Liquidity (Red)",
            f"Most of the traded volume ({1 - share:.0%}) is in falling instruments.",
            2.5,
        )
    if green > red:
        return SentimentCategory(
            "Bullish Liquidity (Green)",
            f"More volume in rising instruments ({share:.0%}).",
            6.0,
        )
    if red > green:
        return SentimentCategory(
            "Bearish Liquidity (Red)",
            f"More volume in falling instruments ({1 - share:.0%}).",
            4.0,
        )
    return SentimentCategory("Balanced", "Volume is split evenly between rising and falling instruments.", 5.0)


def market_structure_category(stats: Optional[MarketStats]) -> Optional[SentimentCategory]:
    """
    Структура рынка: объём, основной тренд, RSI зоны и флаги по зонам.

    Bullish side is green volume + main trend up + MAX ZONE PUMP + zone
    bull flags, the bearish side mirrors it.
    """
    if stats is None:
        return None
    bull = stats.bullish_total
    bear = stats.bearish_total
    if bull == 0 and bear == 0:
        return None

    if bull > bear * 2:
        return SentimentCategory(
            "Strong Bullish Structure",
            f"Bullish structure dominates ({bull} vs {bear}): main trend at support, "
            f"{stats.max_pump_zone} in MAX ZONE PUMP.",
            7.5,
        )
    if bear > bull * 2:
        return SentimentCategory(
            "Strong Bearish Structure",
            f"Bearish structure dominates ({bear} vs {bull}): main trend at resistance, "
            f"{stats.max_dump_zone} in MAX ZONE DUMP.",
            2.5,
        )
    if bull > bear:
        return SentimentCategory("Slightly Bullish Structure", f"More bullish structure ({bull} vs {bear}).", 6.0)
    if bear > bull:
        return SentimentCategory("Slightly Bearish Structure", f"More bearish structure ({bear} vs {bull}).", 4.0)
    return SentimentCategory("Balanced Structure", f"Bullish and bearish structure are balanced ({bull} each).", 5.0)


def overall_outlook(categories: Iterable[Optional[SentimentCategory]]) -> OverallOutlook:
    """
    Среднее по присутствующим категориям, сопоставленное с диапазоном.

    Без категорий возвращается нейтральная оценка 5.0.
    """
    scores = [c.score for c in categories if c is not None]
    score = round(sum(scores) / len(scores), 2) if scores else NEUTRAL_SCORE

    for floor, tone, strategy in OUTLOOK_BANDS:
        if score >= floor:
            return OverallOutlook(score=score, tone=tone, strategy_suggestion=strategy)
    tone, strategy = STRONGLY_BEARISH
    return OverallOutlook(score=score, tone=tone, strategy_suggestion=strategy)


class MarketSentimentAnalyzer:
    """
    Сводный анализатор рыночного сентимента.

    Собирает все категории по срезу рынка и считает итоговый прогноз.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def analyze(
        self,
        snapshots: Sequence[MarketSnapshot],
        liquidations: Optional[Sequence[LiquidationEvent]] = None,
        headlines: Optional[Sequence[str]] = None,
        flags: Optional[Sequence[FlagSignal]] = None,
        market_stats: Optional[MarketStats] = None,
    ) -> MarketAnalysis:
        """
        Анализ среза рынка.

        Args:
            snapshots: 24h данные + funding по каждому инструменту
            liquidations: Принудительные ордера (None - нет данных)
            headlines: Заголовки новостей (None - нет данных)
            flags: Текущие флаговые сигналы (None - нет данных)
            market_stats: Счётчики структуры рынка (None - нет данных)

        Returns:
            MarketAnalysis
        """
        s = self.settings
        categories: Dict[str, SentimentCategory] = {}

        if snapshots:
            stats, imbalance, top_squeeze, top_trap = summarize_funding(snapshots, s)
            categories["general_bias"] = general_bias(stats.green, stats.red)
            categories["liquidity_dominance"] = liquidity_dominance(snapshots)
            categories["funding_imbalance"] = imbalance
            categories["short_squeeze_candidates"] = squeeze_candidates_category(
                top_squeeze, s.candidate_min_volume
            )
            categories["long_trap_candidates"] = long_trap_candidates_category(
                top_trap, s.candidate_min_volume
            )
            signals: List[SentimentSignal] = detect_sentiment_signals(snapshots, s)
        else:
            stats, top_squeeze, top_trap, signals = FundingStats(), [], [], []

        totals = aggregate_liquidations(liquidations) if liquidations is not None else None

        optional = {
            "volume_sentiment": volume_sentiment(snapshots, s.strong_volume),
            "liquidation_sentiment": liquidation_sentiment(totals),
            "news_sentiment": news_sentiment(headlines),
            "actionable_signals": actionable_signal_summary(signals),
            "flag_momentum": flag_momentum_category(flags),
            "market_structure": market_structure_category(market_stats),
        }
        categories.update({name: c for name, c in optional.items() if c is not None})
        categories = {name: c for name, c in categories.items() if c is not None}

        outlook = overall_outlook(categories.values())
        logger.info(
            "Market sentiment",
            instruments=len(snapshots),
            categories=len(categories),
            score=outlook.score,
            tone=outlook.tone,
        )

        return MarketAnalysis(
            categories=categories,
            outlook=outlook,
            funding_stats=stats,
            top_short_squeeze=top_squeeze,
            top_long_trap=top_trap,
            liquidations=totals,
            signals=signals,
            market_stats=market_stats,
        )
