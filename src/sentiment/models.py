"""
Sentiment data structures.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from signals.models import MarketStats


class FundingQuadrant(str, Enum):
    """Joint sign of the 24h price change and the funding rate."""

    GREEN_POSITIVE_FUNDING = "green_positive_funding"
    GREEN_NEGATIVE_FUNDING = "green_negative_funding"
    RED_POSITIVE_FUNDING = "red_positive_funding"
    RED_NEGATIVE_FUNDING = "red_negative_funding"


@dataclass(frozen=True)
class MarketSnapshot:
    """
    24h ticker data joined with the latest funding rate.

    Attributes:
        symbol: Символ (BTCUSDT)
        price_change_percent: Изменение цены за 24h в %
        funding_rate: Последний funding rate (0.0001 = 0.01%)
        last_price: Последняя цена
        volume: Объём 24h в USDT
    """

    symbol: str
    price_change_percent: float
    funding_rate: float
    last_price: float = 0.0
    volume: float = 0.0


@dataclass(frozen=True)
class FundingSample:
    """Funding rate sampled at ``sampled_at`` (ms)."""

    symbol: str
    rate: float
    sampled_at: int

    def is_stale(self, now_ms: int, stale_after_ms: int = 120_000) -> bool:
        """Advisory only; a stale sample is still used."""
        return now_ms - self.sampled_at > stale_after_ms


@dataclass(frozen=True)
class SentimentCategory:
    """One scored sentiment category (score 0-10)."""

    rating: str
    interpretation: str
    score: float


@dataclass(frozen=True)
class OverallOutlook:
    """Mean category score mapped to a tone and a strategy."""

    score: float
    tone: str
    strategy_suggestion: str


@dataclass
class FundingStats:
    """
    Quadrant counts across the instrument universe.

    The four quadrant counts treat a zero price change as green and zero
    funding as positive. ``price_up_funding_negative`` and
    ``price_down_funding_positive`` are strict (zero excluded).
    """

    green_positive_funding: int = 0
    green_negative_funding: int = 0
    red_positive_funding: int = 0
    red_negative_funding: int = 0
    price_up_funding_negative: int = 0
    price_down_funding_positive: int = 0

    @property
    def green(self) -> int:
        return self.green_positive_funding + self.green_negative_funding

    @property
    def red(self) -> int:
        return self.red_positive_funding + self.red_negative_funding

    @property
    def short_squeeze_ratio(self) -> Optional[float]:
        total = self.price_up_funding_negative + self.price_down_funding_positive
        if total == 0:
            return None
        return self.price_up_funding_negative / total

    @property
    def long_trap_ratio(self) -> Optional[float]:
        total = self.price_up_funding_negative + self.price_down_funding_positive
        if total == 0:
            return None
        return self.price_down_funding_positive / total


@dataclass(frozen=True)
class LiquidationEvent:
    """
    Forced order.

    ``side`` is the side of the forced order: SELL closes a long (long
    liquidation), BUY closes a short (short liquidation).
    """

    symbol: str
    side: str
    price: float
    quantity: float
    timestamp: int

    @property
    def notional(self) -> float:
        return self.price * self.quantity


@dataclass
class LiquidationTotals:
    """Aggregated liquidations in USD."""

    long_usd: float = 0.0
    short_usd: float = 0.0
    long_count: int = 0
    short_count: int = 0

    @property
    def total_usd(self) -> float:
        return self.long_usd + self.short_usd


@dataclass(frozen=True)
class SentimentSignal:
    """Actionable per-symbol sentiment signal."""

    symbol: str
    signal: str
    reason: str
    price_change_percent: float
    strong_buy: bool = False
    strong_sell: bool = False
    risk_reward: str = "Low"


@dataclass
class MarketAnalysis:
    """
    Full sentiment result for one cycle.

    Attributes:
        categories: Present categories keyed by name (missing data omitted)
        outlook: Overall outlook
        funding_stats: Quadrant counts
        top_short_squeeze: Ranked short-squeeze candidates
        top_long_trap: Ranked long-trap candidates
        liquidations: Liquidation totals, if provided
        signals: Actionable per-symbol signals
        market_stats: Market structure counts, if provided
    """

    categories: Dict[str, SentimentCategory]
    outlook: OverallOutlook
    funding_stats: FundingStats
    top_short_squeeze: List[MarketSnapshot] = field(default_factory=list)
    top_long_trap: List[MarketSnapshot] = field(default_factory=list)
    liquidations: Optional[LiquidationTotals] = None
    signals: List[SentimentSignal] = field(default_factory=list)
    market_stats: Optional[MarketStats] = None
