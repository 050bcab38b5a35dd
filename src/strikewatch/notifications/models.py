"""Notification events and per-pair detector state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DetectorKind(Enum):
    """Escalation detector owning a timer."""

    STRIKE = "strike"
    APE_IN = "ape_in"


@dataclass
class StrikeState:
    """Rising buy-signal ladder for one pair."""

    buy_price: float = 0.0
    strike_count: int = 0
    unit_price: float = 0.0

    def reset(self) -> None:
        self.buy_price = 0.0
        self.strike_count = 0
        self.unit_price = 0.0


@dataclass
class ApeInState:
    """Drawdown ladder for one pair."""

    threshold: float


@dataclass(frozen=True)
class StrikeNotification:
    symbol: str
    last_price: float
    strike_count: int
    unit_percent: float
    quote_currency: str


@dataclass(frozen=True)
class ApeInNotification:
    symbol: str
    percent_change: float


@dataclass(frozen=True)
class StartupNotice:
    service: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Notification = StrikeNotification | ApeInNotification | StartupNotice
