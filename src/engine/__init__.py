"""
Flagscan - Движок обновления

Хранилище свечей, контракты поставщиков и цикл с поколениями.
"""

from engine.cycle import CycleResult, MarketEngine, divergence_from_candles, snapshot_from_candles
from engine.store import CandleStore, FundingStore
from engine.suppliers import CandleSupplier, FundingSupplier, SentimentConsumer, SignalConsumer

__all__ = [
    "CandleStore",
    "CandleSupplier",
    "CycleResult",
    "FundingStore",
    "FundingSupplier",
    "MarketEngine",
    "SentimentConsumer",
    "SignalConsumer",
    "divergence_from_candles",
    "snapshot_from_candles",
]
