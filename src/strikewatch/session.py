"""Market-data WebSocket session with subscription tracking and reconnects."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import aiohttp

from .exchanges.htx import FrameDecodeError, decode_frame
from .exchanges.normalization import symbol_from_topic, ticker_topic
from .exchanges.protocol import Tick
from .registry import RegistryDiff, SubscriptionState, SymbolRegistry, TradingPair
from .settings import WebSocketSettings

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    STEADY = "steady"
    RECONNECTING = "reconnecting"
    ABANDONED = "abandoned"


LIVE_STATES = (SessionState.OPEN, SessionState.STEADY)


@dataclass
class Command:
    """An in-flight sub/unsub request awaiting its ack."""

    action: str
    pair: TradingPair
    id: str
    attempts: int = 0

    @property
    def topic(self) -> str:
        return ticker_topic(self.pair.symbol)

    def payload(self) -> dict[str, str]:
        return {self.action: self.topic, "id": self.id}


class ConnectionSession:
    """One multiplexed ticker connection for every selected pair.

    Messages are handled one at a time by the reader coroutine. Outbound
    frames go through a queue drained by a single writer task, so the
    catalogue poller and the reader never interleave sends.
    """

    def __init__(
        self,
        url: str,
        registry: SymbolRegistry,
        settings: WebSocketSettings,
        *,
        on_tick: Callable[[str, Tick], Any],
    ) -> None:
        self.url = url
        self.registry = registry
        self.settings = settings
        self.on_tick = on_tick

        self.state = SessionState.DISCONNECTED
        self.retry_count = 0
        self.session: aiohttp.ClientSession | None = None

        self._ws: Any = None
        self._outbox: asyncio.Queue[dict[str, Any]] | None = None
        self._writer: asyncio.Task | None = None
        self._keepalive: asyncio.TimerHandle | None = None
        self._close_task: asyncio.Task | None = None
        self._pending: dict[str, Command] = {}
        self._planned_close = False
        self._resume = asyncio.Event()
        self._ids = itertools.count(1)

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def pending(self) -> dict[str, Command]:
        return dict(self._pending)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession()
        return self.session

    # -- connection loop -------------------------------------------------

    async def run(self, shutdown: asyncio.Event) -> None:
        """Connect, and keep reconnecting until shutdown or abandonment."""
        try:
            while not shutdown.is_set():
                if self.state is SessionState.ABANDONED:
                    await _wait_any(shutdown, self._resume)
                    self._resume.clear()
                    continue

                planned = await _until(self.connect_once(), shutdown)
                if shutdown.is_set():
                    break
                if planned:
                    logger.info("Planned reconnect")
                    continue
                await self._backoff(shutdown)
        finally:
            self.state = SessionState.DISCONNECTED

    async def connect_once(self) -> bool:
        """Run one connection until it closes.

        Returns True when the close was requested by :meth:`force_reconnect`.
        """
        self.state = SessionState.CONNECTING
        session = await self._ensure_session()
        logger.info("Connecting to %s", self.url)
        try:
            async with session.ws_connect(self.url) as ws:
                await self._on_open(ws)
                await self._read_loop(ws)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.warning("WebSocket transport error: %s", e)
        finally:
            self._teardown()

        planned = self._planned_close
        self._planned_close = False
        return planned

    async def _backoff(self, shutdown: asyncio.Event) -> None:
        self.retry_count += 1
        if self.retry_count > self.settings.max_retries:
            self.state = SessionState.ABANDONED
            logger.error(
                "WebSocket session abandoned after %d consecutive failures; waiting for reset",
                self.retry_count - 1,
            )
            return

        self.state = SessionState.RECONNECTING
        delay = self.settings.reconnect_delay_seconds
        logger.warning(
            "WebSocket closed, reconnecting in %.1fs (attempt %d/%d)",
            delay,
            self.retry_count,
            self.settings.max_retries,
        )
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        if self.state is SessionState.RECONNECTING:
            self.state = SessionState.DISCONNECTED

    def reset(self) -> bool:
        """Supervisory reset of an abandoned session."""
        if self.state is not SessionState.ABANDONED:
            return False
        logger.info("WebSocket session reset after abandonment")
        self.retry_count = 0
        self.state = SessionState.DISCONNECTED
        self._resume.set()
        return True

    def force_reconnect(self) -> bool:
        """Close the live connection and reconnect without counting a retry."""
        if self._ws is None:
            return False
        logger.info("Forcing reconnect of %s", self.url)
        self._planned_close = True
        self._close_ws()
        return True

    async def close(self) -> None:
        self._close_ws()
        if self._close_task is not None:
            await asyncio.gather(self._close_task, return_exceptions=True)
        if self.session:
            await self.session.close()
            self.session = None

    # -- open/teardown -----------------------------------------------------

    async def _on_open(self, ws: Any) -> None:
        self._ws = ws
        self._outbox = asyncio.Queue()
        self._writer = asyncio.create_task(self._write_loop(ws, self._outbox))
        self.retry_count = 0
        self.state = SessionState.OPEN
        self._arm_keepalive()

        pairs = list(self.registry)
        for pair in pairs:
            self._subscribe(pair)
        logger.info("WebSocket open, subscribing %d symbols", len(pairs))

    def _teardown(self) -> None:
        self._disarm_keepalive()
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None
        self._outbox = None
        self._ws = None
        self._pending.clear()
        for pair in self.registry:
            pair.subscription = SubscriptionState.UNSUBSCRIBED
        if self.state in LIVE_STATES or self.state is SessionState.CONNECTING:
            self.state = SessionState.DISCONNECTED

    def _close_ws(self) -> None:
        ws = self._ws
        if ws is None or getattr(ws, "closed", False):
            return
        self._close_task = asyncio.create_task(ws.close())

    async def _write_loop(self, ws: Any, outbox: asyncio.Queue[dict[str, Any]]) -> None:
        while True:
            payload = await outbox.get()
            try:
                await ws.send_str(json.dumps(payload))
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                logger.warning("WebSocket send failed: %s", e)
                self._close_ws()
                return

    def _send(self, payload: dict[str, Any]) -> None:
        if self._outbox is None:
            logger.debug("Dropping outbound frame while disconnected: %s", payload)
            return
        self._outbox.put_nowait(payload)

    # -- keepalive ---------------------------------------------------------

    def _arm_keepalive(self) -> None:
        self._disarm_keepalive()
        loop = asyncio.get_running_loop()
        self._keepalive = loop.call_later(self.settings.ping_timeout_seconds, self._on_keepalive_expired)

    def _disarm_keepalive(self) -> None:
        if self._keepalive is not None:
            self._keepalive.cancel()
            self._keepalive = None

    def _on_keepalive_expired(self) -> None:
        self._keepalive = None
        logger.warning(
            "No ping within %.0fs, treating connection as dead",
            self.settings.ping_timeout_seconds,
        )
        self._close_ws()

    # -- inbound -----------------------------------------------------------

    async def _read_loop(self, ws: Any) -> None:
        while True:
            msg = await ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                try:
                    self.handle_message(msg.data)
                except Exception:
                    logger.exception("Message handler failed, closing connection")
                    await ws.close()
                    return
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("WebSocket error: %s", ws.exception())
                return
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                logger.info("WebSocket closed (code=%s)", getattr(ws, "close_code", None))
                return

    def handle_message(self, data: str | bytes) -> None:
        """Decode and dispatch one inbound frame."""
        try:
            payload = decode_frame(data)
        except FrameDecodeError as e:
            logger.warning("Dropping message: %s", e)
            return

        if "ping" in payload:
            self._send({"pong": payload["ping"]})
            self._arm_keepalive()
            return

        if "tick" in payload and "ch" in payload:
            self._handle_tick(payload)
            return

        if "status" in payload and ("id" in payload or "subbed" in payload or "unsubbed" in payload):
            self._handle_ack(payload)
            return

        if payload.get("status") == "error":
            logger.warning(
                "Server error %s: %s", payload.get("err-code"), payload.get("err-msg")
            )
            return

        logger.debug("Unhandled message: %s", payload)

    def _handle_tick(self, payload: dict[str, Any]) -> None:
        symbol = symbol_from_topic(payload["ch"])
        if symbol is None:
            logger.debug("Tick on unrecognized channel %s", payload["ch"])
            return
        self._promote()
        self.on_tick(symbol, Tick.from_payload(payload["tick"]))

    def _handle_ack(self, payload: dict[str, Any]) -> None:
        command = self._pending.pop(str(payload.get("id")), None)
        if command is None:
            command = self._pop_by_topic(payload)
        if command is None:
            logger.debug("Ack for unknown command: %s", payload)
            return

        if payload.get("status") == "ok":
            self._promote()
            if command.action == "sub":
                self.registry.mark_subscription(command.pair.symbol, SubscriptionState.SUBSCRIBED)
            else:
                command.pair.subscription = SubscriptionState.UNSUBSCRIBED
            logger.debug("%s %s acknowledged", command.action, command.topic)
            return

        reason = payload.get("err-msg") or payload.get("status")
        self._retry(command, reason)

    def _pop_by_topic(self, payload: dict[str, Any]) -> Command | None:
        if "subbed" in payload:
            action, topic = "sub", payload["subbed"]
        elif "unsubbed" in payload:
            action, topic = "unsub", payload["unsubbed"]
        else:
            return None
        for command_id, command in self._pending.items():
            if command.action == action and command.topic == topic:
                return self._pending.pop(command_id)
        return None

    def _promote(self) -> None:
        if self.state is SessionState.OPEN:
            self.state = SessionState.STEADY

    # -- outbound commands -------------------------------------------------

    def _next_id(self) -> str:
        return f"{int(time.time() * 1000)}-{next(self._ids)}"

    def _issue(self, command: Command) -> None:
        self._pending[command.id] = command
        self._send(command.payload())

    def _subscribe(self, pair: TradingPair, attempts: int = 0) -> None:
        pair.subscription = SubscriptionState.PENDING_SUBSCRIBE
        self._issue(Command("sub", pair, self._next_id(), attempts))

    def _unsubscribe(self, pair: TradingPair, attempts: int = 0) -> None:
        pair.subscription = SubscriptionState.PENDING_UNSUBSCRIBE
        self._issue(Command("unsub", pair, self._next_id(), attempts))

    def _retry(self, command: Command, reason: Any) -> None:
        attempts = command.attempts + 1
        if command.action == "sub":
            command.pair.subscription = SubscriptionState.UNSUBSCRIBED

        if attempts > self.settings.command_max_retries:
            logger.error(
                "Giving up on %s %s after %d rejections: %s",
                command.action,
                command.topic,
                attempts,
                reason,
            )
            return

        if command.action == "sub" and self.registry.get_by_symbol(command.pair.symbol) is None:
            return

        logger.warning("%s %s rejected (%s), retrying", command.action, command.topic, reason)
        if command.action == "sub":
            self._subscribe(command.pair, attempts)
        else:
            self._unsubscribe(command.pair, attempts)

    def _drop_pending(self, symbol: str) -> None:
        for command_id, command in list(self._pending.items()):
            if command.pair.symbol == symbol:
                del self._pending[command_id]

    def apply_diff(self, diff: RegistryDiff) -> None:
        """Translate a registry diff into sub/unsub commands.

        While no connection is live nothing is sent: the next open
        subscribes the whole selection, which already reflects the diff.
        """
        if not self.is_live:
            logger.debug(
                "Connection not live, deferring %d subscribe(s) to next open",
                len(diff.added),
            )
            return

        for pair in diff.removed:
            was_requested = pair.subscription in (
                SubscriptionState.SUBSCRIBED,
                SubscriptionState.PENDING_SUBSCRIBE,
            )
            self._drop_pending(pair.symbol)
            if was_requested:
                self._unsubscribe(pair)
            else:
                pair.subscription = SubscriptionState.UNSUBSCRIBED
        for pair in diff.added:
            self._subscribe(pair)


async def _wait_any(*events: asyncio.Event) -> None:
    waiters = [asyncio.create_task(event.wait()) for event in events]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()


async def _until(coro: Any, shutdown: asyncio.Event) -> Any:
    """Await ``coro`` unless shutdown fires first, in which case cancel it."""
    task = asyncio.create_task(coro)
    stop = asyncio.create_task(shutdown.wait())
    try:
        await asyncio.wait({task, stop}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        stop.cancel()
        raise
    stop.cancel()
    if task.done():
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    return None
