"""Pytest configuration and fixtures."""

import asyncio
import json
from collections import namedtuple
from unittest.mock import AsyncMock

import aiohttp
import pytest

from strikewatch.exchanges.protocol import SymbolDescriptor
from strikewatch.registry import SymbolRegistry


WSMessage = namedtuple("WSMessage", ["type", "data", "extra"])


def catalogue_row(base, quote, state="online", price_precision=2, amount_precision=4):
    """Raw /v1/common/symbols row."""
    return {
        "base-currency": base.lower(),
        "quote-currency": quote.lower(),
        "price-precision": price_precision,
        "amount-precision": amount_precision,
        "symbol-partition": "main",
        "symbol": f"{base}{quote}".lower(),
        "state": state,
        "value-precision": 8,
        "api-trading": "enabled",
    }


def descriptor(base, quote, state="online", price_precision=2, amount_precision=4):
    return SymbolDescriptor.from_payload(
        catalogue_row(base, quote, state, price_precision, amount_precision)
    )


def create_async_response(status=200, json_data=None, text=""):
    """Create a mock async response."""
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data or {})
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=None)
    return resp


class FakeTimerHandle:
    """Stand-in for asyncio.TimerHandle driven by FakeLoop."""

    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    @property
    def active(self):
        return not self.cancelled and not self.fired


class FakeLoop:
    """Records call_later callbacks and fires them when time is advanced."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback, *args):
        handle = FakeTimerHandle(self.now + delay, lambda: callback(*args))
        self.handles.append(handle)
        return handle

    def active(self):
        return [h for h in self.handles if h.active]

    def advance(self, seconds):
        self.now += seconds
        due = sorted(
            (h for h in self.handles if h.active and h.when <= self.now),
            key=lambda h: h.when,
        )
        for handle in due:
            if handle.active:
                handle.fired = True
                handle.callback()


class FakeWebSocket:
    """Minimal aiohttp ClientWebSocketResponse replacement."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self._inbox = asyncio.Queue()

    def feed(self, payload):
        self._inbox.put_nowait(WSMessage(aiohttp.WSMsgType.TEXT, json.dumps(payload), None))

    def feed_binary(self, data):
        self._inbox.put_nowait(WSMessage(aiohttp.WSMsgType.BINARY, data, None))

    def feed_close(self, code=1006):
        self.close_code = code
        self._inbox.put_nowait(WSMessage(aiohttp.WSMsgType.CLOSED, None, None))

    async def receive(self):
        # give the writer task a turn, like a real socket read would
        await asyncio.sleep(0)
        return await self._inbox.get()

    async def send_str(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        if self.closed:
            return False
        self.closed = True
        if self.close_code is None:
            self.close_code = 1000
        self._inbox.put_nowait(WSMessage(aiohttp.WSMsgType.CLOSED, None, None))
        return True

    def exception(self):
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()


@pytest.fixture
def fake_loop():
    """Deterministic timer loop."""
    return FakeLoop()


@pytest.fixture
def quote_assets():
    """Quote asset priority order."""
    return ["USDT", "BTC", "ETH"]


@pytest.fixture
def registry(quote_assets):
    """Registry tracking BTC/USDT and ETH/USDT."""
    reg = SymbolRegistry(quote_assets)
    reg.reconcile([descriptor("btc", "usdt"), descriptor("eth", "usdt")])
    return reg


@pytest.fixture
def sample_catalogue_response():
    """Sample /v1/common/symbols response."""
    return {
        "status": "ok",
        "data": [
            catalogue_row("btc", "usdt"),
            catalogue_row("eth", "usdt"),
            catalogue_row("eth", "btc", price_precision=6),
            catalogue_row("xrp", "btc", price_precision=8),
            catalogue_row("doge", "usdt", state="offline"),
            catalogue_row("ada", "husd"),
        ],
    }
