"""
Backtest Simulator - проверка сигналов на исторических свечах.

Replays the candles after a signal one at a time and reports whether the
take-profit or the stop-loss level was reached first.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from config import Settings, get_settings
from signals.flag_classifier import FlagClassifier
from signals.models import BacktestOutcome, Candle, Direction, FlagSignal, SignalStrength

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacktestTrade:
    """One simulated trade."""

    symbol: str
    direction: Direction
    signal_index: int
    entry_price: float
    outcome: BacktestOutcome
    exit_index: Optional[int] = None


@dataclass
class BacktestReport:
    """Результат бэктеста."""

    trades: List[BacktestTrade] = field(default_factory=list)

    @property
    def take_profit_hits(self) -> int:
        return sum(1 for t in self.trades if t.outcome is BacktestOutcome.TAKE_PROFIT_HIT)

    @property
    def stop_loss_hits(self) -> int:
        return sum(1 for t in self.trades if t.outcome is BacktestOutcome.STOP_LOSS_HIT)

    @property
    def no_results(self) -> int:
        return sum(1 for t in self.trades if t.outcome is BacktestOutcome.NO_RESULT)

    @property
    def hit_rate(self) -> float:
        """Take-profit hits as % of resolved trades (0.0 when nothing resolved)."""
        resolved = self.take_profit_hits + self.stop_loss_hits
        if resolved == 0:
            return 0.0
        return self.take_profit_hits / resolved * 100


def _find_exit(
    candles: Sequence[Candle],
    direction: Direction,
    entry_price: float,
    take_profit: float,
    stop_loss: float,
    signal_index: int,
) -> tuple:
    if take_profit <= 0 or stop_loss <= 0:
        raise ValueError("take_profit and stop_loss must be positive fractions")
    if signal_index < 0:
        raise ValueError(f"signal_index must be non-negative, got {signal_index}")

    if direction is Direction.BULLISH:
        tp_level = entry_price * (1 + take_profit)
        sl_level = entry_price * (1 - stop_loss)
    else:
        tp_level = entry_price * (1 - take_profit)
        sl_level = entry_price * (1 + stop_loss)

    for i in range(signal_index + 1, len(candles)):
        candle = candles[i]
        if direction is Direction.BULLISH:
            stop_hit = candle.low <= sl_level
            target_hit = candle.high >= tp_level
        else:
            stop_hit = candle.high >= sl_level
            target_hit = candle.low <= tp_level

        # Оба уровня в одной свече - порядок неизвестен, считаем стоп первым
        if stop_hit:
            return BacktestOutcome.STOP_LOSS_HIT, i
        if target_hit:
            return BacktestOutcome.TAKE_PROFIT_HIT, i

    return BacktestOutcome.NO_RESULT, None


def simulate_trade(
    candles: Sequence[Candle],
    direction: Direction,
    entry_price: float,
    take_profit: float,
    stop_loss: float,
    signal_index: int,
) -> BacktestOutcome:
    """
    Replay candles after ``signal_index`` until a level is struck.

    Args:
        candles: Candles ascending by open_time (not modified)
        direction: Signal direction
        entry_price: Entry price
        take_profit: Take-profit as a fraction (0.02 = 2%)
        stop_loss: Stop-loss as a fraction (0.01 = 1%)
        signal_index: Index of the signal candle

    Returns:
        BacktestOutcome; NO_RESULT when the forward data runs out
    """
    outcome, _ = _find_exit(candles, direction, entry_price, take_profit, stop_loss, signal_index)
    return outcome


class BacktestSimulator:
    """
    Бэктестер для проверки сигналов на исторических данных.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def simulate(
        self,
        symbol: str,
        candles: Sequence[Candle],
        direction: Direction,
        signal_index: int,
        entry_price: Optional[float] = None,
        take_profit: Optional[float] = None,
        stop_loss: Optional[float] = None,
    ) -> BacktestTrade:
        """Simulate one trade; entry defaults to the signal candle close."""
        if entry_price is None:
            entry_price = candles[signal_index].close
        outcome, exit_index = _find_exit(
            candles,
            direction,
            entry_price,
            take_profit if take_profit is not None else self.settings.backtest_take_profit,
            stop_loss if stop_loss is not None else self.settings.backtest_stop_loss,
            signal_index,
        )
        return BacktestTrade(
            symbol=symbol,
            direction=direction,
            signal_index=signal_index,
            entry_price=entry_price,
            outcome=outcome,
            exit_index=exit_index,
        )

    def run(
        self,
        flagged: Sequence[tuple],
        take_profit: Optional[float] = None,
        stop_loss: Optional[float] = None,
    ) -> BacktestReport:
        """
        Simulate every currently flagged instrument.

        Args:
            flagged: ``(FlagSignal, candles, signal_index)`` tuples
            take_profit: Override of the configured take-profit
            stop_loss: Override of the configured stop-loss

        Returns:
            BacktestReport with the hit rate
        """
        report = BacktestReport()
        for signal, candles, signal_index in flagged:
            if signal.strength is SignalStrength.NONE:
                continue
            report.trades.append(
                self.simulate(
                    signal.symbol,
                    candles,
                    signal.direction,
                    signal_index,
                    take_profit=take_profit,
                    stop_loss=stop_loss,
                )
            )

        logger.info(
            f"Backtest: {len(report.trades)} trades, "
            f"TP={report.take_profit_hits} SL={report.stop_loss_hits} "
            f"open={report.no_results} hit_rate={report.hit_rate:.1f}%"
        )
        return report

    def replay_classifier(
        self,
        symbol: str,
        candles: Sequence[Candle],
        timeframe: str,
        classifier: Optional[FlagClassifier] = None,
        min_strength: SignalStrength = SignalStrength.WEAK,
        warmup: Optional[int] = None,
        take_profit: Optional[float] = None,
        stop_loss: Optional[float] = None,
        higher_tf_candles: Optional[Sequence[Candle]] = None,
    ) -> BacktestReport:
        """
        Walk history and backtest every point the classifier flags.

        At index ``i`` the classifier only sees ``candles[:i + 1]``, the
        higher-timeframe candles opened at or before that candle, and the
        evaluation time is that candle's open time.
        """
        classifier = classifier or FlagClassifier(self.settings)
        ranks = [SignalStrength.STRONG, SignalStrength.MEDIUM, SignalStrength.WEAK]
        accepted = set(ranks[: ranks.index(min_strength) + 1]) if min_strength in ranks else set(ranks)
        if warmup is None:
            warmup = max(self.settings.ema_periods)

        higher = sorted(higher_tf_candles or [], key=lambda c: c.open_time)
        higher_times = [c.open_time for c in higher]

        flagged: List[tuple] = []
        for i in range(max(warmup - 1, 0), len(candles) - 1):
            history = candles[: i + 1]
            visible = higher[: bisect_right(higher_times, history[-1].open_time)]
            signal: Optional[FlagSignal] = classifier.classify(
                symbol, history, timeframe, history[-1].open_time, visible or None
            )
            if signal is not None and signal.strength in accepted:
                flagged.append((signal, candles, i))

        return self.run(flagged, take_profit=take_profit, stop_loss=stop_loss)
