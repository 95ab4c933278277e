"""
Liquidation aggregation.

Forced SELL order = long liquidation, forced BUY order = short liquidation.
"""

from typing import Iterable, Optional

import structlog

from sentiment.models import LiquidationEvent, LiquidationTotals

logger = structlog.get_logger()


def aggregate_liquidations(
    events: Iterable[LiquidationEvent],
    since_ms: Optional[int] = None,
) -> LiquidationTotals:
    """
    Sum liquidations in USD by side.

    Args:
        events: Forced orders
        since_ms: Ignore events older than this timestamp

    Returns:
        LiquidationTotals
    """
    totals = LiquidationTotals()
    for event in events:
        if since_ms is not None and event.timestamp < since_ms:
            continue
        side = event.side.upper()
        if side == "SELL":
            totals.long_usd += event.notional
            totals.long_count += 1
        elif side == "BUY":
            totals.short_usd += event.notional
            totals.short_count += 1
        else:
            logger.warning("Unknown liquidation side", symbol=event.symbol, side=event.side)
    return totals
