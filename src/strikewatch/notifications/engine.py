"""Per-pair notification engine running the strike and ape-in ladders."""

from __future__ import annotations

import logging
from typing import Any, Callable

from ..exchanges.protocol import Tick
from ..registry import RegistryDiff, SymbolRegistry, TradingPair
from ..settings import ApeInSettings, StrikeSettings
from . import ape_in, strike
from .models import ApeInState, DetectorKind, Notification, StrikeState
from .timers import TimerTable

logger = logging.getLogger(__name__)


class NotificationEngine:
    """Turns ticks into escalating notifications.

    State is keyed by base currency, so it belongs to whichever pair the
    registry currently selects for that base. All mutation happens on the
    event loop thread: ticks via :meth:`process_tick`, decay and reset via
    timer callbacks.
    """

    def __init__(
        self,
        registry: SymbolRegistry,
        strike_settings: StrikeSettings,
        ape_in_settings: ApeInSettings,
        *,
        emit: Callable[[Notification], None] | None = None,
        timers: TimerTable | None = None,
        loop: Any | None = None,
    ) -> None:
        self.registry = registry
        self.strike_settings = strike_settings
        self.ape_in_settings = ape_in_settings
        self.emit = emit
        self.timers = timers or TimerTable(loop)
        self._strike: dict[str, StrikeState] = {}
        self._ape_in: dict[str, ApeInState] = {}

    def strike_state(self, base_currency: str) -> StrikeState | None:
        return self._strike.get(base_currency.upper())

    def ape_in_state(self, base_currency: str) -> ApeInState | None:
        return self._ape_in.get(base_currency.upper())

    def tracked(self) -> list[str]:
        return list(self._strike)

    def track(self, pair: TradingPair) -> None:
        base = pair.base_currency
        self.timers.cancel_all(base)
        self._strike[base] = StrikeState()
        self._ape_in[base] = ApeInState(threshold=self.ape_in_settings.start_percentage)

    def untrack(self, pair: TradingPair) -> None:
        base = pair.base_currency
        self.timers.cancel_all(base)
        self._strike.pop(base, None)
        self._ape_in.pop(base, None)

    def apply_diff(self, diff: RegistryDiff) -> None:
        """Drop state for removed pairs and start fresh state for added ones."""
        for pair in diff.removed:
            self.untrack(pair)
        for pair in diff.added:
            self.track(pair)

    def process_tick(self, symbol: str, tick: Tick) -> list[Notification]:
        pair = self.registry.get_by_symbol(symbol)
        if pair is None:
            logger.debug("Tick for untracked symbol %s ignored", symbol)
            return []

        base = pair.base_currency
        if base not in self._strike:
            self.track(pair)

        notifications: list[Notification] = []
        notifications.extend(self._run_strike(pair, tick))
        notifications.extend(self._run_ape_in(pair, tick))

        if self.emit is not None:
            for notification in notifications:
                self.emit(notification)
        return notifications

    def _run_strike(self, pair: TradingPair, tick: Tick) -> list[Notification]:
        base = pair.base_currency
        outcome = strike.evaluate(
            self._strike[base],
            tick.last_price,
            symbol=pair.symbol,
            quote_currency=pair.quote_currency,
            unit_percent=self.strike_settings.unit_percent,
            decay_minutes=self.strike_settings.decay_minutes,
            precision=pair.quote_precision,
        )
        self._strike[base] = outcome.state

        if outcome.decay_seconds is not None:
            self.timers.schedule(
                base,
                DetectorKind.STRIKE,
                outcome.decay_seconds,
                lambda: self._decay_strike(base),
            )
            logger.debug(
                "%s strike %d at %s, next buy price %s",
                pair.symbol,
                outcome.state.strike_count,
                tick.last_price,
                outcome.state.buy_price,
            )

        if outcome.notification is None:
            return []
        logger.info(
            "Strike %d on %s at %s %s",
            outcome.notification.strike_count,
            pair.symbol,
            tick.last_price,
            pair.quote_currency,
        )
        return [outcome.notification]

    def _run_ape_in(self, pair: TradingPair, tick: Tick) -> list[Notification]:
        base = pair.base_currency
        outcome = ape_in.evaluate(
            self._ape_in[base],
            tick.last_price,
            tick.high,
            symbol=pair.symbol,
            increment_percentage=self.ape_in_settings.increment_percentage,
        )
        if not outcome.triggered:
            return []

        self._ape_in[base] = outcome.state
        self.timers.schedule(
            base,
            DetectorKind.APE_IN,
            self.ape_in_settings.reset_hours * 3600.0,
            lambda: self._reset_ape_in(base),
        )
        logger.info(
            "Ape-in on %s: %.2f%%, next threshold %.2f%%",
            pair.symbol,
            outcome.percent_change,
            outcome.state.threshold,
        )
        return [outcome.notification]

    def _decay_strike(self, base: str) -> None:
        state = self._strike.get(base)
        if state is None:
            return
        state.reset()
        logger.debug("Strike ladder for %s decayed", base)

    def _reset_ape_in(self, base: str) -> None:
        state = self._ape_in.get(base)
        if state is None:
            return
        state.threshold = self.ape_in_settings.start_percentage
        logger.debug("Ape-in threshold for %s reset", base)

    def close(self) -> None:
        self.timers.clear()
