"""Decay/reset timers keyed by (pair, detector)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .models import DetectorKind

logger = logging.getLogger(__name__)

TimerKey = tuple[str, DetectorKind]


class TimerTable:
    """Single owner of every scheduled detector timer.

    Scheduling a key that already has a live timer cancels the old one
    first. Cancelling is idempotent, also for timers that already fired.
    """

    def __init__(self, loop: Any | None = None) -> None:
        self._loop = loop
        self._handles: dict[TimerKey, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> Any:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(
        self,
        key: str,
        kind: DetectorKind,
        delay: float,
        callback: Callable[[], None],
    ) -> None:
        self.cancel(key, kind)
        timer_key = (key, kind)

        def _fire() -> None:
            self._handles.pop(timer_key, None)
            callback()

        self._handles[timer_key] = self.loop.call_later(delay, _fire)
        logger.debug("Scheduled %s timer for %s in %.0fs", kind.value, key, delay)

    def cancel(self, key: str, kind: DetectorKind) -> bool:
        handle = self._handles.pop((key, kind), None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self, key: str) -> None:
        for kind in DetectorKind:
            self.cancel(key, kind)

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def is_scheduled(self, key: str, kind: DetectorKind) -> bool:
        return (key, kind) in self._handles

    def __len__(self) -> int:
        return len(self._handles)
