"""
Actionable Sentiment Signals - сигналы по каждому инструменту.

Проверки идут сверху вниз, первая совпавшая побеждает:

1. Early Squeeze Signal - цена +0..10%, объём >= 50M, funding < 0
2. Early Long Trap      - цена -10..0%, объём >= 50M, funding > 0
3. Bullish Opportunity  - цена +0..10%, объём >= 50M, funding <= 0.0001
4. Bearish Risk         - цена -10..0%, объём >= 50M, funding >= 0.0001
5. Neutral              - всё остальное
"""

from typing import List, Optional, Sequence

from config import Settings, get_settings
from sentiment.models import MarketSnapshot, SentimentSignal

EARLY_SQUEEZE = "Early Squeeze Signal"
EARLY_LONG_TRAP = "Early Long Trap"
BULLISH_OPPORTUNITY = "Bullish Opportunity"
BEARISH_RISK = "Bearish Risk"
NEUTRAL = "Neutral"

# Границы
MAX_MOVE_PERCENT = 10.0
STRONG_FUNDING = 0.015
LOW_FUNDING = 0.0001
ELEVATED_FUNDING = 0.01


def format_volume(volume: float) -> str:
    """$1.2B / $350.0M / $12,345"""
    if volume >= 1_000_000_000:
        return f"${volume / 1e9:.1f}B"
    if volume >= 1_000_000:
        return f"${volume / 1e6:.1f}M"
    return f"${volume:,.0f}"


def risk_reward_grade(abs_change: float, strong_volume: bool) -> str:
    if abs_change > 4.5 and strong_volume:
        return "Strong"
    if abs_change > 3.5:
        return "High"
    if abs_change > 2.0:
        return "Medium-High"
    return "Medium"


def detect_signal(snapshot: MarketSnapshot, settings: Optional[Settings] = None) -> SentimentSignal:
    """Классификация одного инструмента."""
    settings = settings or get_settings()
    pc = snapshot.price_change_percent
    fr = snapshot.funding_rate
    volume = snapshot.volume

    abs_change = abs(pc)
    strong_volume = volume >= settings.strong_volume
    enough_volume = volume >= settings.candidate_min_volume
    rising = 0 < pc < MAX_MOVE_PERCENT
    falling = -MAX_MOVE_PERCENT < pc < 0
    risk_reward = risk_reward_grade(abs_change, strong_volume)

    volume_text = format_volume(volume)
    funding_text = f"{fr * 100:.4f}%"

    if rising and enough_volume and fr < 0:
        return SentimentSignal(
            symbol=snapshot.symbol,
            signal=EARLY_SQUEEZE,
            reason=(
                f"Moderate price gain (+{pc:.1f}%), strong volume ({volume_text}), and negative funding "
                f"({funding_text}) suggest a developing short squeeze."
            ),
            price_change_percent=pc,
            strong_buy=abs_change > 4 and (fr < -STRONG_FUNDING or strong_volume),
            risk_reward=risk_reward,
        )

    if falling and enough_volume and fr > 0:
        return SentimentSignal(
            symbol=snapshot.symbol,
            signal=EARLY_LONG_TRAP,
            reason=(
                f"Moderate price drop ({pc:.1f}%), high volume ({volume_text}), and positive funding "
                f"({funding_text}) suggest a developing long trap scenario."
            ),
            price_change_percent=pc,
            strong_sell=abs_change > 3 and (fr > STRONG_FUNDING or strong_volume),
            risk_reward=risk_reward,
        )

    if rising and enough_volume and fr <= LOW_FUNDING:
        return SentimentSignal(
            symbol=snapshot.symbol,
            signal=BULLISH_OPPORTUNITY,
            reason=(
                f"Moderate price gain (+{pc:.1f}%), high volume ({volume_text}), and low or negative funding "
                f"({funding_text}) suggest early bullish momentum."
            ),
            price_change_percent=pc,
            strong_buy=abs_change > 3 and (fr < 0 or strong_volume),
            risk_reward=risk_reward,
        )

    if falling and enough_volume and fr >= LOW_FUNDING:
        return SentimentSignal(
            symbol=snapshot.symbol,
            signal=BEARISH_RISK,
            reason=(
                f"Moderate price drop ({pc:.1f}%), high volume ({volume_text}), and positive funding "
                f"({funding_text}) suggest long trap or hidden sell pressure."
            ),
            price_change_percent=pc,
            strong_sell=abs_change > 3 and (fr > ELEVATED_FUNDING or strong_volume),
            risk_reward=risk_reward,
        )

    return SentimentSignal(
        symbol=snapshot.symbol,
        signal=NEUTRAL,
        reason="No strong sentiment signal detected.",
        price_change_percent=pc,
        risk_reward="Low",
    )


def detect_sentiment_signals(
    snapshots: Sequence[MarketSnapshot], settings: Optional[Settings] = None
) -> List[SentimentSignal]:
    """One signal per instrument, in input order."""
    settings = settings or get_settings()
    return [detect_signal(s, settings) for s in snapshots]
