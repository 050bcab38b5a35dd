"""Periodic catalogue polling and reconciliation fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import aiohttp

from .exchanges.protocol import CatalogueClient, CatalogueError, SymbolDescriptor
from .registry import RegistryDiff, SymbolRegistry
from .settings import CatalogueSettings

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (CatalogueError, aiohttp.ClientError, asyncio.TimeoutError, OSError)


def backoff_delays(attempts: int, base: float, maximum: float) -> list[float]:
    """Delays slept between ``attempts`` tries: base, 2*base, 4*base, ... capped."""
    return [min(base * (2 ** i), maximum) for i in range(max(attempts - 1, 0))]


async def fetch_with_retry(
    client: CatalogueClient,
    settings: CatalogueSettings,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[SymbolDescriptor] | None:
    """Fetch the catalogue, retrying failures with bounded backoff.

    Returns None once every attempt has failed.
    """
    delays = backoff_delays(
        settings.retry_attempts, settings.retry_base_seconds, settings.retry_max_seconds
    )
    for attempt in range(1, settings.retry_attempts + 1):
        try:
            return await client.fetch_symbols()
        except RETRYABLE_ERRORS as e:
            if attempt > len(delays):
                logger.error(
                    "Catalogue fetch failed after %d attempts: %s", attempt, e
                )
                return None
            delay = delays[attempt - 1]
            logger.warning(
                "Catalogue fetch failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                settings.retry_attempts,
                e,
                delay,
            )
            await sleep(delay)
    return None


class CataloguePoller:
    """Fetches the catalogue and pushes registry diffs to subscribers."""

    def __init__(
        self,
        client: CatalogueClient,
        registry: SymbolRegistry,
        settings: CatalogueSettings,
        *,
        listeners: list[Callable[[RegistryDiff], None]] | None = None,
        after_poll: list[Callable[[], None]] | None = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.settings = settings
        self.listeners = list(listeners or [])
        # run after every successful fetch, changed or not
        self.after_poll = list(after_poll or [])

    async def poll_once(self) -> RegistryDiff | None:
        """Run one fetch/reconcile cycle.

        Returns None when the fetch gave up; the registry is then untouched.
        """
        descriptors = await fetch_with_retry(self.client, self.settings)
        if descriptors is None:
            logger.error("Skipping reconciliation, catalogue unavailable")
            return None

        diff = self.registry.reconcile(descriptors)
        if diff:
            for listener in self.listeners:
                listener(diff)
        for hook in self.after_poll:
            hook()
        return diff

    async def run(self, shutdown: asyncio.Event, first_poll: asyncio.Event | None = None) -> None:
        interval = self.settings.poll_interval_minutes * 60.0
        while not shutdown.is_set():
            await self.poll_once()
            if first_poll is not None:
                first_poll.set()
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
