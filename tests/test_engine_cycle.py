"""
Tests for the market engine cycle.
"""

import pytest
import asyncio
from dataclasses import replace
from unittest.mock import Mock, AsyncMock
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from config import Settings
from engine.cycle import MarketEngine, divergence_from_candles, snapshot_from_candles
from sentiment.models import FundingSample, MarketAnalysis
from signals.models import Candle, Direction, SignalStrength

BASE = 1_699_999_200_000
STEP = {"15m": 900_000, "4h": 4 * 60 * 60 * 1000, "1d": 24 * 60 * 60 * 1000}
NOW = BASE + 59 * STEP["15m"] + 60_000


def trend_candles(count=60, interval="15m", falling=False):
    def close_at(i):
        rise = 100 * 1.01 ** i
        return 200 - rise if falling else rise

    candles = []
    prev_close = close_at(-1)
    for i in range(count):
        close = close_at(i)
        high = max(prev_close, close) * 1.002
        low = min(prev_close, close) * 0.998
        volume = 5000.0 if i == count - 1 else 1000.0
        candles.append(Candle(BASE + i * STEP[interval], prev_close, high, low, close, volume))
        prev_close = close
    return candles


async def market_candles(symbol, interval, limit):
    if symbol == "BADUSDT":
        raise ConnectionError("exchange timeout")
    return trend_candles(interval=interval, falling=symbol == "ETHUSDT")


@pytest.fixture
def supplier():
    supplier = Mock()
    supplier.get_candles = AsyncMock(side_effect=market_candles)
    return supplier


@pytest.fixture
def settings():
    return Settings()


class TestRunCycle:
    """Tests for MarketEngine.run_cycle."""

    @pytest.mark.asyncio
    async def test_partial_failure_excluded(self, supplier, settings):
        engine = MarketEngine(
            supplier, ["BTCUSDT", "BADUSDT", "ETHUSDT"], "15m", settings=settings, higher_timeframe=None
        )

        result = await engine.run_cycle(now_ms=NOW)

        assert result.failed == ["BADUSDT"]
        assert [s.symbol for s in result.signals] == ["BTCUSDT", "ETHUSDT"]
        assert result.signals[0].direction is Direction.BULLISH
        assert result.signals[1].direction is Direction.BEARISH
        assert result.discarded is False
        assert result.generation == 1
        assert engine.published_generation == 1
        assert result.analysis is not None

    @pytest.mark.asyncio
    async def test_higher_timeframe_from_settings(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT"], "15m", settings=settings)

        result = await engine.run_cycle(now_ms=NOW)

        supplier.get_candles.assert_any_await("BTCUSDT", "15m", settings.candle_limit)
        supplier.get_candles.assert_any_await("BTCUSDT", "4h", settings.candle_limit)
        assert result.signals[0].strength is SignalStrength.STRONG
        assert len(engine.store.get("BTCUSDT", "4h")) == 60

    @pytest.mark.parametrize(
        "interval,configured,expected",
        [
            ("15m", "", "4h"),
            ("4h", "", "1d"),
            ("4h", "4h", "1d"),
            ("15m", "1h", "1h"),
        ],
    )
    def test_higher_timeframe_resolution(self, supplier, interval, configured, expected):
        engine = MarketEngine(supplier, ["BTCUSDT"], interval, settings=Settings(higher_timeframe=configured))
        assert engine.higher_timeframe == expected

    def test_higher_timeframe_disabled(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT"], "4h", settings=settings, higher_timeframe=None)
        assert engine.higher_timeframe is None

    @pytest.mark.asyncio
    async def test_strong_on_4h_uses_daily_confirmation(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT"], "4h", settings=settings)
        now = BASE + 59 * STEP["4h"] + 60_000

        result = await engine.run_cycle(now_ms=now)

        supplier.get_candles.assert_any_await("BTCUSDT", "1d", settings.candle_limit)
        assert result.signals[0].strength is SignalStrength.STRONG

    @pytest.mark.asyncio
    async def test_generations_increase(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT"], settings=settings, higher_timeframe=None)

        first = await engine.run_cycle(now_ms=NOW)
        second = await engine.run_cycle(now_ms=NOW)

        assert (first.generation, second.generation) == (1, 2)
        assert first.signals == second.signals

    @pytest.mark.asyncio
    async def test_funding_setups_and_staleness(self, supplier, settings):
        samples = {
            "BTCUSDT": FundingSample("BTCUSDT", -0.001, sampled_at=NOW - 10_000),
            "ETHUSDT": FundingSample("ETHUSDT", -0.002, sampled_at=NOW - 600_000),
        }
        funding = Mock()
        funding.get_funding_rate = AsyncMock(side_effect=lambda symbol: samples.get(symbol))

        engine = MarketEngine(
            supplier,
            ["BTCUSDT", "ETHUSDT"],
            funding_supplier=funding,
            settings=settings,
            higher_timeframe=None,
        )
        result = await engine.run_cycle(now_ms=NOW)

        assert result.stale_funding == ["ETHUSDT"]
        assert [s.setup for s in result.setups] == ["Strong Bull Setup", "Bear Trap / Weakness"]
        # устаревший funding всё равно участвует в сентименте
        stats = result.analysis.funding_stats
        assert stats.price_up_funding_negative == 1
        assert stats.red_negative_funding == 1
        assert engine.funding_store.get("ETHUSDT").rate == -0.002

    @pytest.mark.asyncio
    async def test_consumers_receive_results(self, supplier, settings):
        on_signals = Mock()
        on_sentiment = AsyncMock()
        engine = MarketEngine(
            supplier,
            ["BTCUSDT"],
            settings=settings,
            higher_timeframe=None,
            signal_consumers=[on_signals],
            sentiment_consumers=[on_sentiment],
        )

        result = await engine.run_cycle(now_ms=NOW)

        on_signals.assert_called_once_with(result.signals)
        on_sentiment.assert_awaited_once()
        assert isinstance(on_sentiment.await_args.args[0], MarketAnalysis)

    @pytest.mark.asyncio
    async def test_stale_cycle_discarded(self, settings):
        """A slow cycle that finishes after a newer one is not published."""
        entered = asyncio.Event()
        release = asyncio.Event()
        calls = 0

        async def get_candles(symbol, interval, limit):
            nonlocal calls
            calls += 1
            if calls == 1:
                entered.set()
                await release.wait()
                return trend_candles(count=30)
            return trend_candles()

        supplier = Mock()
        supplier.get_candles = AsyncMock(side_effect=get_candles)
        on_signals = Mock()
        engine = MarketEngine(
            supplier, ["BTCUSDT"], settings=settings, higher_timeframe=None, signal_consumers=[on_signals]
        )

        slow = asyncio.create_task(engine.run_cycle(now_ms=NOW))
        await entered.wait()
        fast = await engine.run_cycle(now_ms=NOW)
        release.set()
        stale = await slow

        assert fast.generation == 2
        assert stale.generation == 1
        assert stale.discarded is True
        assert stale.analysis is None
        assert fast.discarded is False
        assert engine.published_generation == 2
        on_signals.assert_called_once()
        # пакет устаревшего поколения не перезаписал свежие свечи
        assert len(engine.store.get("BTCUSDT", "15m")) == 60

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        active = 0
        peak = 0

        async def get_candles(symbol, interval, limit):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return trend_candles()

        supplier = Mock()
        supplier.get_candles = AsyncMock(side_effect=get_candles)
        engine = MarketEngine(
            supplier,
            [f"S{i}USDT" for i in range(8)],
            settings=Settings(max_concurrency=2),
            higher_timeframe=None,
        )

        result = await engine.run_cycle(now_ms=NOW)

        assert peak == 2
        assert len(result.signals) == 8

    @pytest.mark.asyncio
    async def test_stale_funding_read_from_store(self, supplier, settings):
        funding = Mock()
        funding.get_funding_rate = AsyncMock(return_value=None)
        engine = MarketEngine(
            supplier, ["BTCUSDT", "ETHUSDT"], funding_supplier=funding, settings=settings, higher_timeframe=None
        )
        engine.funding_store.update(FundingSample("ETHUSDT", 0.001, sampled_at=NOW - 600_000))
        engine.funding_store.update(FundingSample("XRPUSDT", 0.001, sampled_at=NOW - 600_000))

        result = await engine.run_cycle(now_ms=NOW)

        assert result.stale_funding == ["ETHUSDT"]

    @pytest.mark.asyncio
    async def test_diverging_symbols(self, settings):
        async def get_candles(symbol, interval, limit):
            candles = trend_candles(falling=symbol == "ETHUSDT")
            if symbol == "DIPUSDT":
                dip = candles[-2].close * 0.99
                candles[-1] = replace(candles[-1], close=dip, low=dip * 0.998)
            return candles

        supplier = Mock()
        supplier.get_candles = AsyncMock(side_effect=get_candles)
        engine = MarketEngine(
            supplier, ["BTCUSDT", "DIPUSDT", "ETHUSDT"], settings=settings, higher_timeframe=None
        )

        result = await engine.run_cycle(now_ms=NOW)

        assert result.diverging == ["DIPUSDT"]

    @pytest.mark.asyncio
    async def test_market_structure_counts(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT", "ETHUSDT"], settings=settings, higher_timeframe=None)

        result = await engine.run_cycle(now_ms=NOW)

        stats = result.market_stats
        # предыдущая 15m сессия - одна свеча: рост у BTC, падение у ETH
        assert (stats.green_volume, stats.red_volume) == (1, 1)
        # 60 свечей мало для EMA200 и для флага по зоне
        assert (stats.bullish_trend, stats.bearish_trend) == (0, 0)
        assert (stats.bull_flags, stats.bear_flags) == (0, 0)
        assert result.analysis.market_stats is stats
        assert result.analysis.categories["market_structure"].score == 5.0

    def test_live_update(self, supplier, settings):
        engine = MarketEngine(supplier, ["BTCUSDT"], settings=settings, higher_timeframe=None)
        first = trend_candles(count=2)
        revised = replace(first[0], close=first[0].close + 1)

        assert engine.apply_update("BTCUSDT", first[0]) is True
        assert engine.apply_update("BTCUSDT", first[1]) is True
        assert engine.apply_update("BTCUSDT", revised) is True

        series = engine.store.get("BTCUSDT", "15m")
        assert len(series) == 2
        assert series[0] == revised

    @pytest.mark.asyncio
    async def test_streamed_candle_survives_fetch(self, settings):
        """A candle streamed while a fetch is in flight is not lost when the batch lands."""
        entered = asyncio.Event()
        release = asyncio.Event()
        streamed = trend_candles(count=61)

        async def get_candles(symbol, interval, limit):
            entered.set()
            await release.wait()
            return streamed[:60]

        supplier = Mock()
        supplier.get_candles = AsyncMock(side_effect=get_candles)
        engine = MarketEngine(supplier, ["BTCUSDT"], settings=settings, higher_timeframe=None)

        cycle = asyncio.create_task(engine.run_cycle(now_ms=NOW))
        await entered.wait()
        for candle in streamed:
            engine.apply_update("BTCUSDT", candle)
        release.set()
        await cycle

        series = engine.store.get("BTCUSDT", "15m")
        assert len(series) == 61
        assert series[-1].open_time == streamed[60].open_time


class TestSnapshotFromCandles:
    """Tests for snapshot_from_candles."""

    def _candles(self, count):
        step = STEP["15m"]
        candles = [Candle(i * step, 100.0, 101.0, 99.0, 100.0, 1000.0) for i in range(count - 1)]
        candles.append(Candle((count - 1) * step, 100.0, 111.0, 99.0, 110.0, 1000.0))
        return candles

    def test_24h_change_and_volume(self):
        snapshot = snapshot_from_candles(
            "BTCUSDT", self._candles(100), FundingSample("BTCUSDT", -0.001, 0)
        )

        assert snapshot.price_change_percent == pytest.approx(10.0)
        assert snapshot.funding_rate == -0.001
        assert snapshot.last_price == 110.0
        # 96 свечей в окне 24h
        assert snapshot.volume == pytest.approx(95 * 100 * 1000 + 110 * 1000)

    def test_short_history_uses_first_candle(self):
        snapshot = snapshot_from_candles("BTCUSDT", self._candles(10), FundingSample("BTCUSDT", 0.0, 0))
        assert snapshot.price_change_percent == pytest.approx(10.0)

    def test_requires_funding_and_candles(self):
        assert snapshot_from_candles("BTCUSDT", self._candles(10), None) is None
        assert snapshot_from_candles("BTCUSDT", [], FundingSample("BTCUSDT", 0.0, 0)) is None


class TestDivergenceFromCandles:
    """Tests for divergence_from_candles."""

    def _candles(self, closes):
        step = STEP["15m"]
        return [Candle(i * step, c, c + 1, c - 1, c, 1000.0) for i, c in enumerate(closes)]

    def test_drop_inside_24h_gain(self):
        result = divergence_from_candles(self._candles([100.0] * 98 + [112.0, 108.0]))

        assert result.is_diverging is True
        assert result.percent_change_24h == pytest.approx(8.0)

    def test_rising_not_diverging(self):
        result = divergence_from_candles(self._candles([100.0] * 98 + [104.0, 108.0]))

        assert result.is_diverging is False
        assert result.is_dropping_now is False

    def test_needs_two_candles(self):
        assert divergence_from_candles(self._candles([100.0])) is None
        assert divergence_from_candles([]) is None
