"""
24h divergence: price falling right now while the 24h change is still green.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DivergenceResult:
    """Short-term move read against the 24h change."""
    is_diverging: bool
    is_dropping_now: bool
    change_24h: float
    percent_change_24h: float
    reason: str


def analyze_diverging_24h(
    current_price: float,
    previous_price: float,
    price_24h_ago: float,
) -> DivergenceResult:
    """
    Compare the latest tick with the previous one and with the price 24h ago.

    Args:
        current_price: Current market price
        previous_price: Price a few minutes ago
        price_24h_ago: Price exactly 24h ago

    Returns:
        DivergenceResult; percent change is 0.0 when the 24h price is 0
    """
    is_dropping_now = current_price < previous_price
    change_24h = current_price - price_24h_ago
    percent_change_24h = (change_24h / price_24h_ago) * 100 if price_24h_ago != 0 else 0.0
    is_diverging = is_dropping_now and change_24h > 0

    if is_diverging:
        reason = (
            "Price is falling now while the 24h change is still positive: "
            "profit-taking or a short correction inside an uptrend."
        )
    elif is_dropping_now:
        reason = "Price is falling and the 24h change is negative or flat: continued downtrend or reversal."
    elif change_24h > 0:
        reason = "Price is rising or stable and the 24h change is positive: consistent uptrend."
    else:
        reason = "Price is rising or stable but the 24h change is negative or flat: short bounce in a downtrend."

    return DivergenceResult(
        is_diverging=is_diverging,
        is_dropping_now=is_dropping_now,
        change_24h=change_24h,
        percent_change_24h=percent_change_24h,
        reason=reason,
    )
