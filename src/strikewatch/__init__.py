"""strikewatch: HTX ticker strike and ape-in notifier."""

from .settings import Settings
from .registry import SymbolRegistry, TradingPair
from .session import ConnectionSession, SessionState
from .notifications import NotificationEngine

__all__ = [
    "Settings",
    "SymbolRegistry",
    "TradingPair",
    "ConnectionSession",
    "SessionState",
    "NotificationEngine",
]
