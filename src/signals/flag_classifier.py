"""
Flag Signal Classifier.

Combines EMA alignment, session breakout, MACD, volume, ADX/ATR and the
higher-timeframe trend into a graded bull/bear flag:

    Strong  - alignment + breakout + MACD + volume + ADX > 25 + ATR floor
              + higher timeframe agreeing
    Medium  - alignment + (breakout or MACD) + 20 <= ADX <= 25
              + higher timeframe not contradicting
    Weak    - alignment + RSI on the right side of 50
              + higher timeframe not contradicting
    None    - alignment only

Without EMA alignment there is no direction and no signal.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from config import Settings, get_settings
from signals.indicators import (
    RSI_MIDLINE,
    IndicatorSet,
    calculate_indicator_set,
    detect_volume_spike,
)
from signals.models import Candle, Direction, FlagSignal, SignalStrength, TrendState
from signals.sessions import detect_trend_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlagInputs:
    """
    Everything the rule layer looks at for one instrument.

    EMA values are ordered from the fastest to the slowest period. Any None
    means the history was too short for that indicator.
    """

    symbol: str
    emas: Sequence[Optional[float]]
    rsi: Optional[float]
    macd_line: Optional[float]
    macd_signal: Optional[float]
    adx: Optional[float]
    atr: Optional[float]
    price: Optional[float]
    breakout: Optional[Direction] = None
    volume_direction: Optional[Direction] = None
    higher_tf_direction: Optional[Direction] = None


@dataclass(frozen=True)
class FlagSetup:
    """Flag signal read together with the funding bias."""

    signal: FlagSignal
    funding_rate: Optional[float]
    setup: str
    position: Optional[str]


def ema_alignment(emas: Sequence[Optional[float]]) -> Optional[Direction]:
    """
    Direction of a strictly ordered EMA stack.

    ``ema5 > ema10 > ema20 > ema50`` is bullish, the reverse is bearish.
    """
    if len(emas) < 2 or any(v is None for v in emas):
        return None
    pairs = list(zip(emas, emas[1:]))
    if all(fast > slow for fast, slow in pairs):
        return Direction.BULLISH
    if all(fast < slow for fast, slow in pairs):
        return Direction.BEARISH
    return None


def volume_confirmation(candles: Sequence[Candle], lookback: int = 20) -> Optional[Direction]:
    """
    Direction confirmed by volume on the last candle.

    The last candle's volume must exceed the average of the preceding
    ``lookback`` candles; the candle's colour gives the direction.
    """
    spike = detect_volume_spike([c.volume for c in candles], threshold=1.0, lookback=lookback)
    if spike is None or not spike.is_spike:
        return None
    last = candles[-1]
    if last.is_bullish:
        return Direction.BULLISH
    if last.is_bearish:
        return Direction.BEARISH
    return None


def funding_bias(funding_rate: Optional[float]) -> Optional[str]:
    """'positive' (longs paying), 'negative' (shorts paying) or None."""
    if funding_rate is None:
        return None
    if funding_rate > 0:
        return "positive"
    if funding_rate < 0:
        return "negative"
    return None


def combine_with_funding(signal: FlagSignal, funding_rate: Optional[float]) -> FlagSetup:
    """
    Read a flag together with who is paying funding.

    Bull flag + shorts paying  -> Strong Bull Setup (Buying)
    Bull flag + longs paying   -> Bull Trap Risk (Selling)
    Bear flag + longs paying   -> Strong Bear Setup (Selling)
    Bear flag + shorts paying  -> Bear Trap / Weakness (Buying)
    """
    bias = funding_bias(funding_rate)
    if bias is None:
        return FlagSetup(signal=signal, funding_rate=funding_rate, setup="Funding n/a", position=None)

    if signal.direction is Direction.BULLISH:
        if bias == "negative":
            setup, position = "Strong Bull Setup", "Buying"
        else:
            setup, position = "Bull Trap Risk", "Selling"
    else:
        if bias == "positive":
            setup, position = "Strong Bear Setup", "Selling"
        else:
            setup, position = "Bear Trap / Weakness", "Buying"

    return FlagSetup(signal=signal, funding_rate=funding_rate, setup=setup, position=position)


class FlagClassifier:
    """
    Layered bull/bear flag classifier.

    Stateless: the same inputs always produce the same signal.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _macd_agrees(self, inputs: FlagInputs, direction: Direction) -> bool:
        if inputs.macd_line is None or inputs.macd_signal is None:
            return False
        if direction is Direction.BULLISH:
            return inputs.macd_line > inputs.macd_signal
        return inputs.macd_line < inputs.macd_signal

    def _rsi_agrees(self, inputs: FlagInputs, direction: Direction) -> bool:
        if inputs.rsi is None:
            return False
        if direction is Direction.BULLISH:
            return inputs.rsi > RSI_MIDLINE
        return inputs.rsi < RSI_MIDLINE

    def _atr_above_floor(self, inputs: FlagInputs) -> bool:
        if inputs.atr is None or not inputs.price:
            return False
        return (inputs.atr / inputs.price) * 100 > self.settings.atr_floor_percent

    def evaluate(self, inputs: FlagInputs) -> Optional[FlagSignal]:
        """
        Apply the strength rules top-down, first match wins.

        Returns:
            FlagSignal, or None when the EMAs are not aligned
        """
        direction = ema_alignment(inputs.emas)
        if direction is None:
            return None

        adx = inputs.adx if inputs.adx is not None else 0.0
        breakout = inputs.breakout is direction
        macd = self._macd_agrees(inputs, direction)
        htf_agrees = inputs.higher_tf_direction is direction
        htf_contradicts = inputs.higher_tf_direction is direction.opposite

        if (
            breakout
            and macd
            and inputs.volume_direction is direction
            and adx > self.settings.adx_strong_threshold
            and self._atr_above_floor(inputs)
            and htf_agrees
        ):
            strength = SignalStrength.STRONG
        elif (
            (breakout or macd)
            and self.settings.adx_medium_threshold <= adx <= self.settings.adx_strong_threshold
            and not htf_contradicts
        ):
            strength = SignalStrength.MEDIUM
        elif self._rsi_agrees(inputs, direction) and not htf_contradicts:
            strength = SignalStrength.WEAK
        else:
            strength = SignalStrength.NONE

        return FlagSignal(symbol=inputs.symbol, direction=direction, strength=strength)

    def build_inputs(
        self,
        symbol: str,
        candles: Sequence[Candle],
        timeframe: str,
        now_ms: int,
        higher_tf_candles: Optional[Sequence[Candle]] = None,
        indicators: Optional[IndicatorSet] = None,
    ) -> FlagInputs:
        """Compute the rule inputs from raw candles."""
        s = self.settings
        if indicators is None:
            indicators = self.indicators_for(candles)

        trend: Optional[TrendState] = detect_trend_state(
            candles,
            timeframe,
            now_ms,
            body_ratio=s.doji_body_ratio,
            utc_offset_hours=s.daily_session_utc_offset_hours,
            anchor_hour=s.daily_session_anchor_hour,
        )
        macd = indicators.latest_macd

        higher_tf_direction = None
        if higher_tf_candles:
            higher = self.indicators_for(higher_tf_candles)
            higher_tf_direction = ema_alignment([higher.latest_ema(p) for p in s.ema_periods])

        return FlagInputs(
            symbol=symbol,
            emas=[indicators.latest_ema(p) for p in s.ema_periods],
            rsi=indicators.latest_rsi,
            macd_line=macd.macd_line if macd else None,
            macd_signal=macd.signal_line if macd else None,
            adx=indicators.latest_adx,
            atr=indicators.latest_atr,
            price=candles[-1].close if candles else None,
            breakout=trend.breakout if trend else None,
            volume_direction=volume_confirmation(candles, s.volume_lookback) if candles else None,
            higher_tf_direction=higher_tf_direction,
        )

    def indicators_for(self, candles: Sequence[Candle]) -> IndicatorSet:
        s = self.settings
        return calculate_indicator_set(
            candles,
            ema_periods=s.ema_periods,
            rsi_period=s.rsi_period,
            macd_periods=(s.macd_fast, s.macd_slow, s.macd_signal),
            adx_period=s.adx_period,
        )

    def classify(
        self,
        symbol: str,
        candles: Sequence[Candle],
        timeframe: str,
        now_ms: int,
        higher_tf_candles: Optional[Sequence[Candle]] = None,
    ) -> Optional[FlagSignal]:
        """
        Classify one instrument from its candles.

        Args:
            symbol: Instrument symbol
            candles: Candles ascending by open_time
            timeframe: Candle timeframe ("15m", "4h", "1d")
            now_ms: Evaluation time (ms, UTC)
            higher_tf_candles: Optional candles of the higher timeframe

        Returns:
            FlagSignal or None (no aligned EMAs or not enough history)
        """
        if not candles:
            return None
        signal = self.evaluate(
            self.build_inputs(symbol, candles, timeframe, now_ms, higher_tf_candles)
        )
        if signal is not None:
            logger.debug(f"{symbol} {timeframe}: {signal.direction.value} {signal.strength.value}")
        return signal
