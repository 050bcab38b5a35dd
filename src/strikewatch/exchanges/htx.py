"""HTX (Huobi) catalogue client and market-data frame codec."""

from __future__ import annotations

import gzip
import json
import logging
import zlib
from typing import Any

import aiohttp

from .protocol import CatalogueError, SymbolDescriptor

logger = logging.getLogger(__name__)

SYMBOLS_PATH = "/v1/common/symbols"


class FrameDecodeError(ValueError):
    """A WebSocket frame could not be decompressed or parsed."""


def decode_frame(data: str | bytes) -> dict[str, Any]:
    """Decode one market-data frame.

    Binary frames are gzip-compressed JSON, text frames are plain JSON.

    Raises:
        FrameDecodeError: If decompression or JSON parsing fails, or the
            payload is not a JSON object
    """
    try:
        if isinstance(data, (bytes, bytearray)):
            data = gzip.decompress(bytes(data)).decode("utf-8")
        payload = json.loads(data)
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FrameDecodeError(f"undecodable frame: {exc}") from exc

    if not isinstance(payload, dict):
        raise FrameDecodeError(f"unexpected frame type: {type(payload).__name__}")
    return payload


class HTXCatalogueClient:
    """Fetches the spot symbol catalogue from the HTX REST API."""

    def __init__(self, base_url: str = "https://api.huobi.pro", *, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: aiohttp.ClientSession | None = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def fetch_symbols(self) -> list[SymbolDescriptor]:
        """Fetch the full symbol catalogue."""
        session = await self._ensure_session()
        url = f"{self.base_url}{SYMBOLS_PATH}"

        async with session.get(url) as resp:
            if resp.status != 200:
                raise CatalogueError(f"Failed to fetch symbols: HTTP {resp.status}")
            try:
                data = await resp.json()
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise CatalogueError(f"Failed to fetch symbols: unreadable body: {e}") from e

        if not isinstance(data, dict):
            raise CatalogueError(
                f"Failed to fetch symbols: unexpected body type {type(data).__name__}"
            )
        if data.get("status") != "ok":
            raise CatalogueError(
                f"Failed to fetch symbols: status={data.get('status')!r} "
                f"err={data.get('err-msg')!r}"
            )

        rows = data.get("data")
        if not isinstance(rows, list):
            raise CatalogueError("Failed to fetch symbols: response has no symbol list")

        descriptors = []
        for row in rows:
            try:
                descriptors.append(SymbolDescriptor.from_payload(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed catalogue row %r: %s", row, e)
        return descriptors

    async def close(self) -> None:
        """Close connections."""
        if self.session:
            await self.session.close()
            self.session = None
