"""
Хранилище свечей и funding по инструментам.

One owned series per (symbol, interval). Live updates go through
``upsert``; fetched batches go through ``replace``, carry the generation
of the cycle that fetched them and are merged by open_time.
"""

import logging
from bisect import bisect_left
from typing import Dict, List, Optional, Sequence, Tuple

from sentiment.models import FundingSample
from signals.models import Candle

logger = logging.getLogger(__name__)

SeriesKey = Tuple[str, str]


class CandleStore:
    """
    Candle series keyed by (symbol, interval).

    Series are kept ascending by open_time. Readers get a copy.
    """

    def __init__(self):
        self._series: Dict[SeriesKey, List[Candle]] = {}
        self._generations: Dict[SeriesKey, int] = {}

    def get(self, symbol: str, interval: str) -> List[Candle]:
        return list(self._series.get((symbol, interval), []))

    def keys(self) -> List[SeriesKey]:
        return list(self._series.keys())

    def generation(self, symbol: str, interval: str) -> Optional[int]:
        return self._generations.get((symbol, interval))

    def upsert(self, symbol: str, interval: str, candle: Candle) -> bool:
        """
        Apply one live candle.

        A candle whose open_time is already stored overwrites that candle,
        a newer one is appended, an older one that is not stored is
        discarded.

        Returns:
            True if the series changed
        """
        series = self._series.setdefault((symbol, interval), [])
        if not series or candle.open_time > series[-1].open_time:
            series.append(candle)
            return True

        index = bisect_left([c.open_time for c in series], candle.open_time)
        if series[index].open_time == candle.open_time:
            series[index] = candle
            return True

        logger.debug(
            f"{symbol} {interval}: discarded late candle {candle.open_time} "
            f"(first {series[0].open_time}, last {series[-1].open_time})"
        )
        return False

    def replace(self, symbol: str, interval: str, candles: Sequence[Candle], generation: int) -> bool:
        """
        Merge a fetched batch unless a newer generation already did.

        The batch replaces the stored candles up to its last open_time;
        stored candles newer than the batch (streamed while it was in
        flight) are kept.

        Returns:
            False when the batch is stale and was dropped
        """
        key = (symbol, interval)
        last = self._generations.get(key)
        if last is not None and generation < last:
            logger.info(f"{symbol} {interval}: dropped batch of generation {generation} (have {last})")
            return False

        batch = sorted(candles, key=lambda c: c.open_time)
        current = self._series.get(key, [])
        if batch:
            newer = [c for c in current if c.open_time > batch[-1].open_time]
            if newer:
                logger.debug(f"{symbol} {interval}: kept {len(newer)} streamed candles newer than the batch")
            self._series[key] = batch + newer
        else:
            self._series[key] = list(current)
        self._generations[key] = generation
        return True


class FundingStore:
    """Latest funding sample per symbol."""

    def __init__(self):
        self._samples: Dict[str, FundingSample] = {}

    def update(self, sample: FundingSample) -> bool:
        """Keep the sample unless an equally fresh or newer one is stored."""
        current = self._samples.get(sample.symbol)
        if current is not None and sample.sampled_at < current.sampled_at:
            return False
        self._samples[sample.symbol] = sample
        return True

    def get(self, symbol: str) -> Optional[FundingSample]:
        return self._samples.get(symbol)

    def stale_symbols(self, now_ms: int, stale_after_ms: int) -> List[str]:
        return sorted(
            symbol for symbol, sample in self._samples.items() if sample.is_stale(now_ms, stale_after_ms)
        )
