"""Tradable-symbol registry with quote-asset priority deduplication."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from .exchanges.protocol import SymbolDescriptor

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Exchange-side listing state of a trading pair."""

    ONLINE = "online"
    OFFLINE = "offline"
    SUSPENDED = "suspended"
    PRE_ONLINE = "pre-online"

    @classmethod
    def from_catalogue(cls, raw: str) -> "LifecycleState":
        if raw == "suspend":
            return cls.SUSPENDED
        try:
            return cls(raw)
        except ValueError:
            return cls.OFFLINE


class SubscriptionState(Enum):
    """Market-data subscription state of a trading pair."""

    UNSUBSCRIBED = "unsubscribed"
    PENDING_SUBSCRIBE = "pending-subscribe"
    SUBSCRIBED = "subscribed"
    PENDING_UNSUBSCRIBE = "pending-unsubscribe"


@dataclass
class TradingPair:
    """The selected pair for one base currency."""

    symbol: str
    base_currency: str
    quote_currency: str
    base_precision: int
    quote_precision: int
    lifecycle: LifecycleState = LifecycleState.ONLINE
    subscription: SubscriptionState = SubscriptionState.UNSUBSCRIBED

    @classmethod
    def from_descriptor(cls, descriptor: SymbolDescriptor) -> "TradingPair":
        return cls(
            symbol=descriptor.symbol,
            base_currency=descriptor.base_currency,
            quote_currency=descriptor.quote_currency,
            base_precision=descriptor.amount_precision,
            quote_precision=descriptor.price_precision,
            lifecycle=LifecycleState.from_catalogue(descriptor.state),
        )


@dataclass
class RegistryDiff:
    """Result of one reconciliation pass."""

    added: list[TradingPair] = field(default_factory=list)
    removed: list[TradingPair] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


class SymbolRegistry:
    """Owns the base currency -> selected trading pair mapping."""

    def __init__(self, quote_assets: list[str]) -> None:
        if not quote_assets:
            raise ValueError("at least one quote asset is required")
        self.quote_assets = [q.upper() for q in quote_assets]
        self._priority = {quote: index for index, quote in enumerate(self.quote_assets)}
        self._pairs: dict[str, TradingPair] = {}
        self._by_symbol: dict[str, str] = {}

    def get(self, base_currency: str) -> TradingPair | None:
        return self._pairs.get(base_currency.upper())

    def get_by_symbol(self, symbol: str) -> TradingPair | None:
        base = self._by_symbol.get(symbol.lower())
        return self._pairs.get(base) if base else None

    def __iter__(self) -> Iterator[TradingPair]:
        return iter(list(self._pairs.values()))

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, base_currency: object) -> bool:
        return isinstance(base_currency, str) and base_currency.upper() in self._pairs

    def mark_subscription(self, symbol: str, state: SubscriptionState) -> bool:
        """Record the subscription state of a tracked pair.

        Returns False when the symbol is no longer tracked.
        """
        pair = self.get_by_symbol(symbol)
        if pair is None:
            return False
        pair.subscription = state
        return True

    def select(self, descriptors: Iterable[SymbolDescriptor]) -> dict[str, SymbolDescriptor]:
        """Pick the highest-priority online descriptor per base currency."""
        selected: dict[str, SymbolDescriptor] = {}
        for descriptor in descriptors:
            rank = self._priority.get(descriptor.quote_currency.upper())
            if rank is None or not descriptor.is_online:
                continue
            base = descriptor.base_currency.upper()
            current = selected.get(base)
            if current is None or rank < self._priority[current.quote_currency.upper()]:
                selected[base] = descriptor
        return selected

    def reconcile(self, descriptors: Iterable[SymbolDescriptor]) -> RegistryDiff:
        """Diff a catalogue snapshot against the current selection.

        A base currency whose selected quote asset changed shows up in both
        ``removed`` (old pair) and ``added`` (new pair).
        """
        selected = self.select(descriptors)
        diff = RegistryDiff()

        for base, pair in list(self._pairs.items()):
            descriptor = selected.get(base)
            if descriptor is not None and descriptor.symbol == pair.symbol:
                pair.base_precision = descriptor.amount_precision
                pair.quote_precision = descriptor.price_precision
                continue
            self._drop(base)
            diff.removed.append(pair)

        for base, descriptor in selected.items():
            if base in self._pairs:
                continue
            pair = TradingPair.from_descriptor(descriptor)
            self._pairs[base] = pair
            self._by_symbol[pair.symbol] = base
            diff.added.append(pair)

        if diff:
            logger.info(
                "Registry reconciled: %d added, %d removed, %d tracked",
                len(diff.added),
                len(diff.removed),
                len(self._pairs),
            )
            for pair in diff.removed:
                logger.debug("Removed %s (%s)", pair.symbol, pair.base_currency)
            for pair in diff.added:
                logger.debug("Added %s (%s)", pair.symbol, pair.base_currency)
        return diff

    def _drop(self, base: str) -> None:
        pair = self._pairs.pop(base)
        self._by_symbol.pop(pair.symbol, None)
