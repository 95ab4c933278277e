"""
Flagscan - Технические индикаторы

Расчёт EMA, RSI, MACD, ATR и ADX по серии свечей.

Все функции чистые: одинаковый вход даёт побитово одинаковый выход.
Серийные функции возвращают список той же длины, что и вход, с None
на индексах прогрева.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from signals.models import Candle


# Constants for indicator calculations
RSI_MAX_VALUE = 100.0
RSI_MIDLINE = 50.0
RSI_OVERBOUGHT_THRESHOLD = 70
RSI_OVERSOLD_THRESHOLD = 30

ADX_STRONG_TREND = 25.0
ADX_WEAK_TREND = 20.0

Series = List[Optional[float]]


@dataclass
class RSI:
    """
    Relative Strength Index (RSI).

    Индикатор относительной силы для определения
    перекупленности/перепроданности актива.

    Attributes:
        value: Значение RSI (0-100)
        period: Период расчёта
    """

    value: float
    period: int = 14

    @property
    def signal(self) -> str:
        """
        Получение торгового сигнала на основе RSI.

        Returns:
            str: 'oversold' (перепродан), 'overbought' (перекуплен), или 'neutral'
        """
        if self.value < RSI_OVERSOLD_THRESHOLD:
            return "oversold"
        elif self.value > RSI_OVERBOUGHT_THRESHOLD:
            return "overbought"
        return "neutral"


@dataclass
class MACD:
    """
    Moving Average Convergence Divergence (MACD).

    Attributes:
        macd_line: Линия MACD
        signal_line: Сигнальная линия
        histogram: Гистограмма (разница между MACD и сигнальной линией)
    """

    macd_line: float
    signal_line: float
    histogram: float

    @property
    def signal(self) -> str:
        """
        Получение торгового сигнала на основе MACD.

        Returns:
            str: 'bullish' (бычий), 'bearish' (медвежий), или 'neutral'
        """
        if self.macd_line > self.signal_line:
            return "bullish"
        elif self.macd_line < self.signal_line:
            return "bearish"
        return "neutral"


@dataclass
class MACDSeries:
    """MACD line, signal and histogram aligned to the input."""

    line: Series
    signal: Series
    histogram: Series


@dataclass
class ATR:
    """Average True Range."""
    value: float
    percent: float  # ATR as % of price

    @property
    def volatility(self) -> str:
        """'low', 'medium', 'high' or 'extreme'."""
        if self.percent < 1:
            return "low"
        elif self.percent < 3:
            return "medium"
        elif self.percent < 5:
            return "high"
        return "extreme"


@dataclass
class ADX:
    """Average Directional Index with +DI/-DI."""
    value: float
    plus_di: float
    minus_di: float

    @property
    def trend_strength(self) -> str:
        """'strong', 'moderate' or 'weak'."""
        if self.value > ADX_STRONG_TREND:
            return "strong"
        elif self.value >= ADX_WEAK_TREND:
            return "moderate"
        return "weak"


@dataclass
class VolumeSpike:
    """Volume Spike Detection."""
    is_spike: bool
    spike_percentage: float  # Percentage above average (e.g., 180 means +180%)
    current_volume: float
    average_volume: float


@dataclass
class IndicatorSet:
    """
    All indicator series for one candle series.

    Attributes:
        ema: EMA series keyed by period
        rsi: RSI series
        macd: MACD line/signal/histogram series
        adx: ADX series
        atr: ATR series
    """

    ema: Dict[int, Series]
    rsi: Series
    macd: MACDSeries
    adx: Series
    atr: Series

    def latest_ema(self, period: int) -> Optional[float]:
        return last_value(self.ema.get(period, []))

    @property
    def latest_rsi(self) -> Optional[float]:
        return last_value(self.rsi)

    @property
    def latest_adx(self) -> Optional[float]:
        return last_value(self.adx)

    @property
    def latest_atr(self) -> Optional[float]:
        return last_value(self.atr)

    @property
    def latest_macd(self) -> Optional[MACD]:
        line = last_value(self.macd.line)
        signal = last_value(self.macd.signal)
        if line is None or signal is None:
            return None
        return MACD(macd_line=line, signal_line=signal, histogram=line - signal)


def last_value(series: Sequence[Optional[float]]) -> Optional[float]:
    """Last element of an aligned series (None if empty or still warming up)."""
    if not series:
        return None
    return series[-1]


def ema_series(data: Sequence[Optional[float]], period: int) -> Series:
    """
    Расчёт экспоненциальной скользящей средней.

    The first defined value is the SMA of the first ``period`` inputs;
    after that ``v[i] = x[i] * k + v[i-1] * (1 - k)`` with
    ``k = 2 / (period + 1)``. Leading None values in ``data`` (for example
    the warm-up of a MACD line) are skipped and stay None in the output.

    Args:
        data: Список значений (цены закрытия или другая серия)
        period: Период EMA

    Returns:
        Series той же длины; None пока EMA не определена
    """
    if period <= 0:
        raise ValueError(f"EMA period must be positive, got {period}")

    result: Series = [None] * len(data)
    start = next((i for i, v in enumerate(data) if v is not None), len(data))
    values = np.asarray(data[start:], dtype=float)

    if len(values) < period:
        return result

    k = 2 / (period + 1)
    prev = float(np.mean(values[:period]))
    result[start + period - 1] = prev
    for i in range(period, len(values)):
        prev = float(values[i]) * k + prev * (1 - k)
        result[start + i] = prev
    return result


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    # Нет потерь - RSI = 100 (единое соглашение для всего движка)
    if avg_loss == 0:
        return RSI_MAX_VALUE
    rs = avg_gain / avg_loss
    return RSI_MAX_VALUE - (RSI_MAX_VALUE / (1 + rs))


def rsi_series(prices: Sequence[float], period: int = 14) -> Series:
    """
    RSI по методу Уайлдера.

    Seeds the average gain/loss with the mean of the first ``period``
    deltas, then smooths with ``avg = (avg * (period - 1) + current) / period``.
    A zero average loss yields 100.

    Args:
        prices: Список цен закрытия
        period: Период расчёта (по умолчанию 14)

    Returns:
        Series той же длины; первое значение на индексе ``period``
    """
    result: Series = [None] * len(prices)
    if len(prices) < period + 1:
        return result

    deltas = np.diff(np.asarray(prices, dtype=float))
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    result[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period + 1, len(prices)):
        avg_gain = (avg_gain * (period - 1) + float(gains[i - 1])) / period
        avg_loss = (avg_loss * (period - 1) + float(losses[i - 1])) / period
        result[i] = _rsi_from_averages(avg_gain, avg_loss)

    return result


def calculate_rsi(prices: Sequence[float], period: int = 14) -> Optional[RSI]:
    """
    Расчёт индикатора RSI.

    Args:
        prices: Список цен закрытия
        period: Период расчёта (по умолчанию 14)

    Returns:
        RSI: Объект с рассчитанным RSI или None если недостаточно данных
    """
    value = last_value(rsi_series(prices, period))
    if value is None:
        return None
    return RSI(value=value, period=period)


def macd_series(
    prices: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDSeries:
    """
    MACD line, signal and histogram.

    ``line = EMA(fast) - EMA(slow)``, ``signal = EMA(line, signal_period)``,
    ``histogram = line - signal``.
    """
    fast = ema_series(prices, fast_period)
    slow = ema_series(prices, slow_period)
    line: Series = [
        f - s if f is not None and s is not None else None
        for f, s in zip(fast, slow)
    ]
    signal = ema_series(line, signal_period)
    histogram: Series = [
        m - s if m is not None and s is not None else None
        for m, s in zip(line, signal)
    ]
    return MACDSeries(line=line, signal=signal, histogram=histogram)


def calculate_macd(
    prices: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> Optional[MACD]:
    """
    Расчёт индикатора MACD.

    Args:
        prices: Список цен закрытия
        fast_period: Быстрый период EMA (по умолчанию 12)
        slow_period: Медленный период EMA (по умолчанию 26)
        signal_period: Период сигнальной линии (по умолчанию 9)

    Returns:
        MACD: Объект с рассчитанным MACD или None если недостаточно данных
    """
    if len(prices) < slow_period + signal_period:
        return None

    series = macd_series(prices, fast_period, slow_period, signal_period)
    line = last_value(series.line)
    signal = last_value(series.signal)
    if line is None or signal is None:
        return None

    return MACD(macd_line=line, signal_line=signal, histogram=line - signal)


def _ohlc_arrays(
    high: Sequence[float], low: Sequence[float], close: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    if not (len(high) == len(low) == len(close)):
        raise ValueError("high, low and close must have the same length")
    return (
        np.asarray(high, dtype=float),
        np.asarray(low, dtype=float),
        np.asarray(close, dtype=float),
    )


def _true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """True Range for indices 1..n-1."""
    prev_close = close[:-1]
    return np.maximum.reduce([
        high[1:] - low[1:],
        np.abs(high[1:] - prev_close),
        np.abs(low[1:] - prev_close),
    ])


def _wilder_smooth(values: np.ndarray, period: int) -> List[float]:
    """Seed with the mean of the first ``period`` values, then Wilder-smooth."""
    smoothed = [float(np.mean(values[:period]))]
    for value in values[period:]:
        smoothed.append((smoothed[-1] * (period - 1) + float(value)) / period)
    return smoothed


def atr_series(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14,
) -> Series:
    """
    Average True Range (Wilder).

    ``TR = max(high - low, |high - prevClose|, |low - prevClose|)``; the first
    ATR sits on index ``period``.
    """
    high_array, low_array, close_array = _ohlc_arrays(high, low, close)
    result: Series = [None] * len(high_array)
    if len(high_array) < period + 1:
        return result

    tr = _true_range(high_array, low_array, close_array)
    for offset, value in enumerate(_wilder_smooth(tr, period)):
        result[period + offset] = value
    return result


def _directional_index(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int,
) -> Tuple[Series, Series, Series]:
    """+DI, -DI and DX series."""
    high_array, low_array, close_array = _ohlc_arrays(high, low, close)
    n = len(high_array)
    plus_di: Series = [None] * n
    minus_di: Series = [None] * n
    dx: Series = [None] * n
    if n < period + 1:
        return plus_di, minus_di, dx

    tr = _true_range(high_array, low_array, close_array)
    up_move = high_array[1:] - high_array[:-1]
    down_move = low_array[:-1] - low_array[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed = zip(
        _wilder_smooth(tr, period),
        _wilder_smooth(plus_dm, period),
        _wilder_smooth(minus_dm, period),
    )
    for offset, (tr_s, plus_s, minus_s) in enumerate(smoothed):
        i = period + offset
        p_di = 100 * plus_s / tr_s if tr_s > 0 else 0.0
        m_di = 100 * minus_s / tr_s if tr_s > 0 else 0.0
        di_sum = p_di + m_di
        plus_di[i] = p_di
        minus_di[i] = m_di
        # Нулевая сумма DI - DX = 0
        dx[i] = 100 * abs(p_di - m_di) / di_sum if di_sum > 0 else 0.0

    return plus_di, minus_di, dx


def adx_series(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14,
) -> Series:
    """
    Average Directional Index.

    DX is Wilder-smoothed into ADX; the first ADX value is the mean of the
    first ``period`` DX values and sits on index ``2 * period - 1``.
    """
    _, _, dx = _directional_index(high, low, close, period)
    result: Series = [None] * len(dx)
    dx_values = np.asarray([v for v in dx if v is not None], dtype=float)
    if len(dx_values) < period:
        return result

    first = 2 * period - 1
    for offset, value in enumerate(_wilder_smooth(dx_values, period)):
        result[first + offset] = value
    return result


def calculate_atr(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14,
) -> ATR:
    """
    Calculate Average True Range.

    Returns:
        ATR; value 0.0 when the series is shorter than ``period + 1``
    """
    value = last_value(atr_series(high, low, close, period)) or 0.0
    price = close[-1] if len(close) else 0.0
    percent = (value / price) * 100 if price > 0 else 0.0
    return ATR(value=value, percent=percent)


def calculate_adx(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14,
) -> ADX:
    """
    Calculate Average Directional Index (ADX).

    Returns:
        ADX; all values 0.0 while ADX is not yet defined
    """
    plus_di, minus_di, _ = _directional_index(high, low, close, period)
    value = last_value(adx_series(high, low, close, period))
    if value is None:
        return ADX(value=0.0, plus_di=0.0, minus_di=0.0)
    return ADX(value=value, plus_di=plus_di[-1] or 0.0, minus_di=minus_di[-1] or 0.0)


def detect_volume_spike(volumes: Sequence[float], threshold: float = 2.0, lookback: int = 20) -> Optional[VolumeSpike]:
    """
    Detect abnormal volume spikes.

    Compare current volume to average of last 'lookback' candles.
    Spike = current volume > average * threshold

    Args:
        volumes: List of volumes
        threshold: Multiplier for spike detection (default 2.0 = 200%)
        lookback: Number of candles to average (default 20)

    Returns:
        VolumeSpike: spike_percentage (e.g., 180 means +180% above average) or None if insufficient data
    """
    if len(volumes) < lookback + 1:
        return None

    volume_array = np.asarray(volumes, dtype=float)
    current_volume = float(volume_array[-1])
    # Average of previous candles (excluding current)
    average_volume = float(np.mean(volume_array[-(lookback + 1):-1]))

    if average_volume == 0:
        return VolumeSpike(
            is_spike=current_volume > 0,
            spike_percentage=0.0,
            current_volume=current_volume,
            average_volume=average_volume,
        )

    ratio = current_volume / average_volume
    return VolumeSpike(
        is_spike=ratio > threshold,
        spike_percentage=float((ratio - 1.0) * 100),
        current_volume=current_volume,
        average_volume=average_volume,
    )


def calculate_indicator_set(
    candles: Sequence[Candle],
    ema_periods: Sequence[int] = (5, 10, 20, 50),
    rsi_period: int = 14,
    macd_periods: Tuple[int, int, int] = (12, 26, 9),
    adx_period: int = 14,
) -> IndicatorSet:
    """
    Расчёт всех индикаторов по серии свечей.

    Args:
        candles: Свечи по возрастанию open_time
        ema_periods: Периоды EMA
        rsi_period: Период RSI
        macd_periods: (fast, slow, signal)
        adx_period: Период ADX/ATR

    Returns:
        IndicatorSet: Серии индикаторов, выровненные по свечам
    """
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    fast, slow, signal = macd_periods

    return IndicatorSet(
        ema={period: ema_series(closes, period) for period in ema_periods},
        rsi=rsi_series(closes, rsi_period),
        macd=macd_series(closes, fast, slow, signal),
        adx=adx_series(highs, lows, closes, adx_period),
        atr=atr_series(highs, lows, closes, adx_period),
    )
