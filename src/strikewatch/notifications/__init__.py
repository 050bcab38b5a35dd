"""Escalation detectors, notification engine and delivery."""

from .engine import NotificationEngine
from .models import (
    ApeInNotification,
    ApeInState,
    DetectorKind,
    Notification,
    StartupNotice,
    StrikeNotification,
    StrikeState,
)
from .timers import TimerTable

__all__ = [
    "NotificationEngine",
    "ApeInNotification",
    "ApeInState",
    "DetectorKind",
    "Notification",
    "StartupNotice",
    "StrikeNotification",
    "StrikeState",
    "TimerTable",
]
