"""Ape-in drawdown ladder."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .models import ApeInNotification, ApeInState

# Brand-new listings report a -100% change before a high is established.
NO_HIGH_PERCENT = -100.0


@dataclass(frozen=True)
class ApeInOutcome:
    state: ApeInState
    percent_change: float | None = None
    notification: ApeInNotification | None = None

    @property
    def triggered(self) -> bool:
        return self.notification is not None


def percent_change(last_price: float, period_high: float) -> float | None:
    """Percent move from the period high, rounded to 2dp.

    Returns None when the high is zero or negative.
    """
    if period_high <= 0:
        return None
    return round((last_price - period_high) / period_high * 100.0, 2)


def evaluate(
    state: ApeInState,
    last_price: float,
    period_high: float,
    *,
    symbol: str,
    increment_percentage: float,
) -> ApeInOutcome:
    """Apply one tick to a drawdown ladder without mutating ``state``."""
    change = percent_change(last_price, period_high)
    if change is None:
        return ApeInOutcome(state)

    if change >= state.threshold or change == NO_HIGH_PERCENT:
        return ApeInOutcome(state, change)

    nxt = replace(state, threshold=state.threshold + increment_percentage)
    return ApeInOutcome(nxt, change, ApeInNotification(symbol=symbol.upper(), percent_change=change))
