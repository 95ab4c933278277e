"""
Funding Imbalance & Squeeze/Trap Detector.

Классифицирует инструменты по знаку изменения цены и funding rate:

- Цена растёт + funding отрицательный = шорты платят = кандидат на short squeeze
- Цена падает + funding положительный = лонги платят = кандидат на long trap

Cut points for the imbalance category (applied to the dominant ratio):
    > 0.60  strong skew
    > 0.55  mild skew (the other side below 0.45)
    else    neutral
"""

from typing import Iterable, List, Optional, Sequence

import structlog

from config import Settings, get_settings
from sentiment.models import FundingQuadrant, FundingStats, MarketSnapshot, SentimentCategory

logger = structlog.get_logger()


def classify_quadrant(snapshot: MarketSnapshot) -> FundingQuadrant:
    """Quadrant of one instrument; zero change is green, zero funding is positive."""
    green = snapshot.price_change_percent >= 0
    positive = snapshot.funding_rate >= 0
    if green:
        return FundingQuadrant.GREEN_POSITIVE_FUNDING if positive else FundingQuadrant.GREEN_NEGATIVE_FUNDING
    return FundingQuadrant.RED_POSITIVE_FUNDING if positive else FundingQuadrant.RED_NEGATIVE_FUNDING


def is_short_squeeze_candidate(snapshot: MarketSnapshot) -> bool:
    return snapshot.price_change_percent > 0 and snapshot.funding_rate < 0


def is_long_trap_candidate(snapshot: MarketSnapshot) -> bool:
    return snapshot.price_change_percent < 0 and snapshot.funding_rate > 0


def count_quadrants(snapshots: Iterable[MarketSnapshot]) -> FundingStats:
    """Aggregate quadrant counts over the instrument universe."""
    stats = FundingStats()
    for snapshot in snapshots:
        quadrant = classify_quadrant(snapshot)
        if quadrant is FundingQuadrant.GREEN_POSITIVE_FUNDING:
            stats.green_positive_funding += 1
        elif quadrant is FundingQuadrant.GREEN_NEGATIVE_FUNDING:
            stats.green_negative_funding += 1
        elif quadrant is FundingQuadrant.RED_POSITIVE_FUNDING:
            stats.red_positive_funding += 1
        else:
            stats.red_negative_funding += 1

        if is_short_squeeze_candidate(snapshot):
            stats.price_up_funding_negative += 1
        elif is_long_trap_candidate(snapshot):
            stats.price_down_funding_positive += 1
    return stats


def rank_short_squeeze_candidates(
    snapshots: Sequence[MarketSnapshot], top_n: int = 5
) -> List[MarketSnapshot]:
    """Price up + funding negative, most negative funding first (ties by symbol)."""
    candidates = [s for s in snapshots if is_short_squeeze_candidate(s)]
    candidates.sort(key=lambda s: (s.funding_rate, s.symbol))
    return candidates[:top_n]


def rank_long_trap_candidates(
    snapshots: Sequence[MarketSnapshot], top_n: int = 5
) -> List[MarketSnapshot]:
    """Price down + funding positive, most positive funding first (ties by symbol)."""
    candidates = [s for s in snapshots if is_long_trap_candidate(s)]
    candidates.sort(key=lambda s: (-s.funding_rate, s.symbol))
    return candidates[:top_n]


def funding_imbalance_category(
    stats: FundingStats, settings: Optional[Settings] = None
) -> SentimentCategory:
    """
    Map the squeeze/trap ratio to a sentiment category.

    Args:
        stats: Quadrant counts
        settings: Thresholds (squeeze_strong_ratio, squeeze_mild_ratio)

    Returns:
        SentimentCategory
    """
    settings = settings or get_settings()
    pun = stats.price_up_funding_negative
    pdp = stats.price_down_funding_positive
    squeeze = stats.short_squeeze_ratio
    trap = stats.long_trap_ratio

    if squeeze is None or trap is None:
        return SentimentCategory(
            rating="Mixed/Neutral Funding",
            interpretation="No instruments with price and funding pulling in opposite directions.",
            score=5.0,
        )

    if squeeze > settings.squeeze_strong_ratio:
        return SentimentCategory(
            rating="Strong Short Squeeze Skew",
            interpretation=(
                f"{pun} rising pairs have shorts paying against {pdp} falling pairs with longs paying "
                f"({squeeze:.0%}). Shorts are crowded into a rising market."
            ),
            score=8.0,
        )
    if trap > settings.squeeze_strong_ratio:
        return SentimentCategory(
            rating="Strong Long Trap Skew",
            interpretation=(
                f"{pdp} falling pairs have longs paying against {pun} rising pairs with shorts paying "
                f"({trap:.0%}). Longs are trapped, further selloff possible."
            ),
            score=2.0,
        )
    if squeeze > settings.squeeze_mild_ratio:
        return SentimentCategory(
            rating="Mild Short Squeeze Skew",
            interpretation=f"Shorts paying on rising pairs slightly dominate ({squeeze:.0%}).",
            score=6.5,
        )
    if trap > settings.squeeze_mild_ratio:
        return SentimentCategory(
            rating="Mild Long Trap Skew",
            interpretation=f"Longs paying on falling pairs slightly dominate ({trap:.0%}).",
            score=3.5,
        )
    return SentimentCategory(
        rating="Mixed/Neutral Funding",
        interpretation=f"No strong trap pattern. PUN: {pun}, PDP: {pdp}.",
        score=5.0,
    )


def squeeze_candidates_category(
    candidates: Sequence[MarketSnapshot], min_volume: float = 50_000_000
) -> SentimentCategory:
    """Short-squeeze potential from the ranked candidates with real volume."""
    count = sum(1 for s in candidates if s.volume > min_volume)
    if count > 3:
        return SentimentCategory(
            rating="High Potential",
            interpretation=(
                f"Many pairs ({count}) show price appreciation with negative funding, "
                "indicating shorts are being squeezed."
            ),
            score=8.0,
        )
    if count > 0:
        return SentimentCategory(
            rating="Moderate Potential",
            interpretation=f"{count} pairs show signs of short squeezes.",
            score=6.0,
        )
    return SentimentCategory(
        rating="Low Potential",
        interpretation="Few short squeeze setups observed.",
        score=4.0,
    )


def long_trap_candidates_category(
    candidates: Sequence[MarketSnapshot], min_volume: float = 50_000_000
) -> SentimentCategory:
    """Long-trap risk from the ranked candidates with real volume."""
    count = sum(1 for s in candidates if s.volume > min_volume)
    if count > 3:
        return SentimentCategory(
            rating="High Risk",
            interpretation=(
                f"Many pairs ({count}) show price depreciation with positive funding, "
                "indicating longs are trapped."
            ),
            score=2.0,
        )
    if count > 0:
        return SentimentCategory(
            rating="Moderate Risk",
            interpretation=f"{count} pairs show signs of long traps.",
            score=4.0,
        )
    return SentimentCategory(
        rating="Low Risk",
        interpretation="Few long trap setups observed.",
        score=6.0,
    )


def summarize_funding(snapshots: Sequence[MarketSnapshot], settings: Optional[Settings] = None):
    """
    Counts, ratio category and ranked candidates in one pass.

    Returns:
        (FundingStats, imbalance category, top short squeeze, top long trap)
    """
    settings = settings or get_settings()
    stats = count_quadrants(snapshots)
    top_squeeze = rank_short_squeeze_candidates(snapshots, settings.top_candidates)
    top_trap = rank_long_trap_candidates(snapshots, settings.top_candidates)

    logger.debug(
        "Funding imbalance",
        instruments=len(snapshots),
        price_up_funding_negative=stats.price_up_funding_negative,
        price_down_funding_positive=stats.price_down_funding_positive,
    )
    return stats, funding_imbalance_category(stats, settings), top_squeeze, top_trap
