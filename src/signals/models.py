"""
Flagscan - Модели данных

Свечи, состояния тренда и результаты классификации.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union


class Direction(str, Enum):
    """Направление сигнала."""

    BULLISH = "bullish"
    BEARISH = "bearish"

    @property
    def opposite(self) -> "Direction":
        return Direction.BEARISH if self is Direction.BULLISH else Direction.BULLISH


class SignalStrength(str, Enum):
    """Сила флагового сигнала."""

    STRONG = "Strong"
    MEDIUM = "Medium"
    WEAK = "Weak"
    NONE = "None"


class BacktestOutcome(str, Enum):
    """Результат симулированной сделки."""

    TAKE_PROFIT_HIT = "take_profit_hit"
    STOP_LOSS_HIT = "stop_loss_hit"
    NO_RESULT = "no_result"


@dataclass(frozen=True)
class Candle:
    """
    Одна OHLCV свеча.

    Attributes:
        open_time: Время открытия (мс, UTC)
        open: Цена открытия
        high: Максимум
        low: Минимум
        close: Цена закрытия
        volume: Объём
    """

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_kline(cls, row: Sequence[Union[str, float, int]]) -> "Candle":
        """
        Parse an exchange kline row.

        Binance returns ``[openTime, open, high, low, close, volume, ...]``
        with prices as strings.
        """
        return cls(
            open_time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class SessionWindow:
    """Start of the current and previous session (ms, UTC)."""

    current_start: int
    prev_start: int


@dataclass(frozen=True)
class TrendState:
    """
    Breakout state of the current session against the previous one.

    Attributes:
        breakout: Direction of the breakout or None
        is_doji_after_breakout: Last candle of the session is a doji
            (only ever True when a breakout was declared)
        prev_session_high: Previous session high
        prev_session_low: Previous session low
        session_high: Current session high
        session_low: Current session low
        last_price: Close of the last candle in the current session
    """

    breakout: Optional[Direction]
    is_doji_after_breakout: bool
    prev_session_high: float
    prev_session_low: float
    session_high: float
    session_low: float
    last_price: float


@dataclass(frozen=True)
class FlagSignal:
    """Classified flag for one instrument."""

    symbol: str
    direction: Direction
    strength: SignalStrength


@dataclass
class MarketStats:
    """
    Счётчики структуры рынка по всем инструментам.

    Attributes:
        green_volume: Highest-volume candle of the previous session closed up
        red_volume: Highest-volume candle of the previous session closed down
        bullish_trend: Main trend above (EMA fast > EMA slow)
        bearish_trend: Main trend below
        max_pump_zone: RSI in MAX ZONE PUMP
        max_dump_zone: RSI in MAX ZONE DUMP
        bull_flags: Zone bull flags
        bear_flags: Zone bear flags
    """

    green_volume: int = 0
    red_volume: int = 0
    bullish_trend: int = 0
    bearish_trend: int = 0
    max_pump_zone: int = 0
    max_dump_zone: int = 0
    bull_flags: int = 0
    bear_flags: int = 0

    @property
    def bullish_total(self) -> int:
        return self.green_volume + self.bullish_trend + self.max_pump_zone + self.bull_flags

    @property
    def bearish_total(self) -> int:
        return self.red_volume + self.bearish_trend + self.max_dump_zone + self.bear_flags
