"""
Market Engine - цикл обновления сигналов.

Каждый цикл получает номер поколения. Инструменты обрабатываются
параллельно (не больше max_concurrency одновременно); упавший инструмент
исключается из цикла, остальные продолжают. Результат цикла, который
закончился позже более нового цикла, отбрасывается и не доставляется
потребителям.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import structlog

from config import Settings, get_settings
from engine.store import CandleStore, FundingStore
from engine.suppliers import CandleSupplier, FundingSupplier, SentimentConsumer, SignalConsumer
from sentiment.aggregator import MarketSentimentAnalyzer
from sentiment.models import FundingSample, LiquidationEvent, MarketAnalysis, MarketSnapshot
from signals.divergence import DivergenceResult, analyze_diverging_24h
from signals.flag_classifier import FlagClassifier, FlagSetup, combine_with_funding
from signals.market_structure import SymbolStructure, analyze_structure, count_market_stats
from signals.models import Candle, FlagSignal, MarketStats
from signals.sessions import higher_timeframe_for

logger = structlog.get_logger()

DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class SymbolResult:
    """Результат обработки одного инструмента."""

    symbol: str
    signal: Optional[FlagSignal]
    funding: Optional[FundingSample]
    candles: List[Candle]
    structure: Optional[SymbolStructure] = None


@dataclass
class CycleResult:
    """
    Результат одного цикла.

    Attributes:
        generation: Номер поколения цикла
        signals: Флаговые сигналы по инструментам
        setups: Сигналы вместе с funding
        analysis: Сводный сентимент (None если цикл отброшен)
        failed: Инструменты, упавшие в этом цикле
        stale_funding: Инструменты с устаревшим funding
        diverging: Инструменты, падающие сейчас при росте за 24h
        market_stats: Счётчики структуры рынка
        discarded: Цикл устарел и не был опубликован
    """

    generation: int
    signals: List[FlagSignal] = field(default_factory=list)
    setups: List[FlagSetup] = field(default_factory=list)
    analysis: Optional[MarketAnalysis] = None
    failed: List[str] = field(default_factory=list)
    stale_funding: List[str] = field(default_factory=list)
    diverging: List[str] = field(default_factory=list)
    market_stats: Optional[MarketStats] = None
    discarded: bool = False


def _split_24h(candles: Sequence[Candle]) -> Tuple[Candle, List[Candle]]:
    """Reference candle 24h before the last one and the candles after it."""
    cutoff = candles[-1].open_time - DAY_MS
    reference = candles[0]
    window = []
    for candle in candles:
        if candle.open_time <= cutoff:
            reference = candle
        else:
            window.append(candle)
    return reference, window


def divergence_from_candles(candles: Sequence[Candle]) -> Optional[DivergenceResult]:
    """
    Divergence of the last close against the previous close and the 24h
    reference close.

    Returns:
        DivergenceResult, or None with fewer than two candles
    """
    if len(candles) < 2:
        return None
    reference, _ = _split_24h(candles)
    return analyze_diverging_24h(candles[-1].close, candles[-2].close, reference.close)


def snapshot_from_candles(
    symbol: str, candles: Sequence[Candle], funding: Optional[FundingSample]
) -> Optional[MarketSnapshot]:
    """
    24h snapshot built from the candle series.

    The reference price is the last close at least 24h before the last
    candle (the first candle when history is shorter). Volume is quoted in
    USD (close * volume).
    """
    if not candles or funding is None:
        return None

    last = candles[-1]
    reference, window = _split_24h(candles)
    change = (last.close - reference.close) / reference.close * 100 if reference.close else 0.0
    return MarketSnapshot(
        symbol=symbol,
        price_change_percent=change,
        funding_rate=funding.rate,
        last_price=last.close,
        volume=sum(c.close * c.volume for c in window),
    )


class MarketEngine:
    """
    Движок: поставщики -> классификатор -> сентимент -> потребители.
    """

    def __init__(
        self,
        candle_supplier: CandleSupplier,
        symbols: Sequence[str],
        interval: str = "15m",
        funding_supplier: Optional[FundingSupplier] = None,
        settings: Optional[Settings] = None,
        higher_timeframe: Optional[str] = "",
        store: Optional[CandleStore] = None,
        funding_store: Optional[FundingStore] = None,
        signal_consumers: Optional[List[SignalConsumer]] = None,
        sentiment_consumers: Optional[List[SentimentConsumer]] = None,
    ):
        self.settings = settings or get_settings()
        self.candle_supplier = candle_supplier
        self.funding_supplier = funding_supplier
        self.symbols = list(symbols)
        self.interval = interval
        # "" - из настроек или следующий таймфрейм, None - без старшего таймфрейма
        if higher_timeframe == "":
            higher_timeframe = self.settings.higher_timeframe or higher_timeframe_for(interval)
        if higher_timeframe == interval:
            higher_timeframe = higher_timeframe_for(interval)
        self.higher_timeframe = higher_timeframe

        self.store = store or CandleStore()
        self.funding_store = funding_store or FundingStore()
        self.classifier = FlagClassifier(self.settings)
        self.analyzer = MarketSentimentAnalyzer(self.settings)
        self.signal_consumers: List[SignalConsumer] = list(signal_consumers or [])
        self.sentiment_consumers: List[SentimentConsumer] = list(sentiment_consumers or [])

        self._generation = 0
        self._published_generation = 0

    @property
    def published_generation(self) -> int:
        return self._published_generation

    def next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def apply_update(self, symbol: str, candle: Candle, interval: Optional[str] = None) -> bool:
        """Live candle update (e.g. a streamed kline close)."""
        return self.store.upsert(symbol, interval or self.interval, candle)

    async def _fetch(self, symbol: str, interval: str, generation: int) -> List[Candle]:
        candles = await self.candle_supplier.get_candles(symbol, interval, self.settings.candle_limit)
        self.store.replace(symbol, interval, candles, generation)
        return self.store.get(symbol, interval)

    async def evaluate_symbol(self, symbol: str, generation: int, now_ms: int) -> SymbolResult:
        """Fetch and classify one instrument."""
        candles = await self._fetch(symbol, self.interval, generation)

        higher = None
        if self.higher_timeframe:
            higher = await self._fetch(symbol, self.higher_timeframe, generation)

        funding = None
        if self.funding_supplier is not None:
            funding = await self.funding_supplier.get_funding_rate(symbol)
            if funding is not None:
                self.funding_store.update(funding)

        signal = self.classifier.classify(symbol, candles, self.interval, now_ms, higher)
        structure = analyze_structure(symbol, candles, self.interval, now_ms, self.settings)
        return SymbolResult(
            symbol=symbol, signal=signal, funding=funding, candles=candles, structure=structure
        )

    async def run_cycle(
        self,
        now_ms: Optional[int] = None,
        snapshots: Optional[Sequence[MarketSnapshot]] = None,
        liquidations: Optional[Sequence[LiquidationEvent]] = None,
        headlines: Optional[Sequence[str]] = None,
    ) -> CycleResult:
        """
        Один цикл обновления.

        Args:
            now_ms: Время оценки (по умолчанию текущее)
            snapshots: Готовые 24h данные рынка; иначе строятся из свечей
            liquidations: Принудительные ордера за период
            headlines: Заголовки новостей

        Returns:
            CycleResult
        """
        generation = self.next_generation()
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        async def evaluate_with_limit(symbol: str) -> SymbolResult:
            async with semaphore:
                return await self.evaluate_symbol(symbol, generation, now_ms)

        tasks = [evaluate_with_limit(symbol) for symbol in self.symbols]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        result = CycleResult(generation=generation)
        evaluated: List[SymbolResult] = []
        for symbol, outcome in zip(self.symbols, results):
            if isinstance(outcome, Exception):
                logger.warning("Инструмент исключён из цикла", symbol=symbol, generation=generation, error=str(outcome))
                result.failed.append(symbol)
                continue
            evaluated.append(outcome)

        stale = set(self.funding_store.stale_symbols(now_ms, self.settings.funding_stale_after_ms))
        result.stale_funding = [i.symbol for i in evaluated if i.symbol in stale]
        result.market_stats = count_market_stats(i.structure for i in evaluated if i.structure is not None)

        for item in evaluated:
            divergence = divergence_from_candles(item.candles)
            if divergence is not None and divergence.is_diverging:
                result.diverging.append(item.symbol)
            if item.signal is None:
                continue
            result.signals.append(item.signal)
            result.setups.append(
                combine_with_funding(item.signal, item.funding.rate if item.funding else None)
            )

        if generation < self._published_generation:
            logger.info(
                "Устаревший цикл отброшен",
                generation=generation,
                published=self._published_generation,
            )
            result.discarded = True
            return result

        if snapshots is None:
            snapshots = [
                snap
                for snap in (snapshot_from_candles(i.symbol, i.candles, i.funding) for i in evaluated)
                if snap is not None
            ]
        result.analysis = self.analyzer.analyze(
            snapshots,
            liquidations=liquidations,
            headlines=headlines,
            flags=result.signals,
            market_stats=result.market_stats,
        )

        self._published_generation = generation
        logger.info(
            "Цикл завершён",
            generation=generation,
            signals=len(result.signals),
            failed=len(result.failed),
            stale_funding=len(result.stale_funding),
            diverging=len(result.diverging),
        )
        await self._publish(result)
        return result

    async def _publish(self, result: CycleResult) -> None:
        for consumer in self.signal_consumers:
            outcome = consumer(list(result.signals))
            if inspect.isawaitable(outcome):
                await outcome
        if result.analysis is not None:
            for consumer in self.sentiment_consumers:
                outcome = consumer(result.analysis)
                if inspect.isawaitable(outcome):
                    await outcome
