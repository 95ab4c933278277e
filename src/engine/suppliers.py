"""
Contracts with the outside world.

Suppliers are async and may fail; consumers are plain or async callables.
"""

from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

from sentiment.models import FundingSample, MarketAnalysis
from signals.models import Candle, FlagSignal


class CandleSupplier(Protocol):
    async def get_candles(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        """Candles ascending by open_time."""
        ...


class FundingSupplier(Protocol):
    async def get_funding_rate(self, symbol: str) -> Optional[FundingSample]:
        """Latest funding sample, None if the symbol has no funding."""
        ...


SignalConsumer = Callable[[List[FlagSignal]], Union[Any, Awaitable[Any]]]
SentimentConsumer = Callable[[MarketAnalysis], Union[Any, Awaitable[Any]]]
