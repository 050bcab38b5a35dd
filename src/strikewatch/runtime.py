from __future__ import annotations

import asyncio
import logging
import signal

from .catalogue import CataloguePoller
from .di import AppContainer
from .notifications.engine import NotificationEngine
from .notifications.models import Notification, StartupNotice
from .registry import SymbolRegistry
from .session import ConnectionSession, SessionState

logger = logging.getLogger(__name__)

SERVICE_NAME = "strikewatch"


class Runtime:
    """All long-lived components sharing one event loop."""

    def __init__(self, container: AppContainer) -> None:
        settings = container.settings
        self.container = container
        self.queue: asyncio.Queue[Notification] = asyncio.Queue()
        self.registry = SymbolRegistry(settings.exchange.quote_assets)
        self.engine = NotificationEngine(
            self.registry,
            settings.strike,
            settings.ape_in,
            emit=self.queue.put_nowait,
        )
        self.session = ConnectionSession(
            settings.exchange.ws_url,
            self.registry,
            settings.websocket,
            on_tick=self.engine.process_tick,
        )
        self.poller = CataloguePoller(
            container.catalogue_client,
            self.registry,
            settings.catalogue,
            listeners=[self.engine.apply_diff, self.session.apply_diff],
            after_poll=[self.revive_session],
        )
        self.first_poll = asyncio.Event()

    def revive_session(self) -> None:
        """Give an abandoned connection a fresh retry budget.

        A successful catalogue poll shows the exchange is reachable again.
        """
        if self.session.state is SessionState.ABANDONED:
            logger.warning("Catalogue reachable, restarting abandoned WebSocket session")
            self.session.reset()

    async def deliver(self) -> None:
        shutdown = self.container.shutdown
        dispatcher = self.container.dispatcher
        while not shutdown.is_set() or not self.queue.empty():
            try:
                notification = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                await dispatcher.send(notification)
            except Exception:
                logger.exception("Dispatcher failed on %r", notification)

    async def stream(self) -> None:
        shutdown = self.container.shutdown
        # the first connection should subscribe a populated selection
        waiters = {
            asyncio.create_task(shutdown.wait()),
            asyncio.create_task(self.first_poll.wait()),
        }
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        if shutdown.is_set():
            return
        await self.session.run(shutdown)

    async def force_reconnects(self) -> None:
        hours = self.container.settings.websocket.force_reconnect_hours
        if hours <= 0:
            return
        shutdown = self.container.shutdown
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=hours * 3600.0)
            except asyncio.TimeoutError:
                self.session.force_reconnect()

    async def close(self) -> None:
        self.engine.close()
        await self.session.close()
        await self.container.catalogue_client.close()
        await self.container.dispatcher.close()


def _install_signal_handlers(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable for %s", sig)


async def run(container: AppContainer) -> None:
    logger.info("runtime starting")
    logger.debug("settings=%s", container.settings.redacted())

    _install_signal_handlers(container.shutdown)
    runtime = Runtime(container)
    runtime.queue.put_nowait(StartupNotice(SERVICE_NAME))

    try:
        async with asyncio.TaskGroup() as tg:
            tg.create_task(runtime.poller.run(container.shutdown, runtime.first_poll))
            tg.create_task(runtime.stream())
            tg.create_task(runtime.deliver())
            tg.create_task(runtime.force_reconnects())
    finally:
        await runtime.close()

    logger.info("runtime stopped")
