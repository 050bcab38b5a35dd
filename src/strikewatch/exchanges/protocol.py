"""Protocol definition for market catalogue clients and wire types."""

from __future__ import annotations

from typing import Any, Protocol


class CatalogueError(Exception):
    """Catalogue endpoint answered, but not with a usable listing."""


class SymbolDescriptor:
    """One row of the exchange's symbol catalogue."""

    def __init__(
        self,
        symbol: str,
        base_currency: str,
        quote_currency: str,
        price_precision: int,
        amount_precision: int,
        state: str,
        api_trading: str = "enabled",
    ):
        self.symbol = symbol
        self.base_currency = base_currency
        self.quote_currency = quote_currency
        self.price_precision = price_precision
        self.amount_precision = amount_precision
        self.state = state
        self.api_trading = api_trading

    @classmethod
    def from_payload(cls, row: dict[str, Any]) -> "SymbolDescriptor":
        """Build a descriptor from a raw ``/v1/common/symbols`` row."""
        return cls(
            symbol=str(row["symbol"]).lower(),
            base_currency=str(row["base-currency"]).upper(),
            quote_currency=str(row["quote-currency"]).upper(),
            price_precision=int(row.get("price-precision", 8)),
            amount_precision=int(row.get("amount-precision", 8)),
            state=str(row.get("state", "offline")),
            api_trading=str(row.get("api-trading", "enabled")),
        )

    @property
    def is_online(self) -> bool:
        return self.state == "online"

    def __repr__(self) -> str:
        return f"SymbolDescriptor({self.symbol!r}, state={self.state!r})"


class Tick:
    """Ticker snapshot pushed on ``market.<symbol>.ticker``."""

    FIELDS = (
        "open",
        "high",
        "low",
        "close",
        "amount",
        "vol",
        "count",
        "bid",
        "bidSize",
        "ask",
        "askSize",
        "lastPrice",
        "lastSize",
    )

    def __init__(
        self,
        last_price: float,
        high: float = 0.0,
        open: float = 0.0,
        low: float = 0.0,
        close: float = 0.0,
        amount: float = 0.0,
        vol: float = 0.0,
        count: float = 0.0,
        bid: float = 0.0,
        bid_size: float = 0.0,
        ask: float = 0.0,
        ask_size: float = 0.0,
        last_size: float = 0.0,
    ):
        self.last_price = last_price
        self.high = high
        self.open = open
        self.low = low
        self.close = close
        self.amount = amount
        self.vol = vol
        self.count = count
        self.bid = bid
        self.bid_size = bid_size
        self.ask = ask
        self.ask_size = ask_size
        self.last_size = last_size

    @classmethod
    def from_payload(cls, tick: dict[str, Any]) -> "Tick":
        def num(key: str) -> float:
            value = tick.get(key)
            return float(value) if value is not None else 0.0

        return cls(
            last_price=num("lastPrice"),
            high=num("high"),
            open=num("open"),
            low=num("low"),
            close=num("close"),
            amount=num("amount"),
            vol=num("vol"),
            count=num("count"),
            bid=num("bid"),
            bid_size=num("bidSize"),
            ask=num("ask"),
            ask_size=num("askSize"),
            last_size=num("lastSize"),
        )


class CatalogueClient(Protocol):
    """Protocol for fetching the tradable-symbol catalogue."""

    async def fetch_symbols(self) -> list[SymbolDescriptor]:
        """Fetch the full symbol catalogue.

        Returns:
            Every catalogue row, regardless of lifecycle state

        Raises:
            CatalogueError: The endpoint answered with a non-ok status
            aiohttp.ClientError: Transport failure
            asyncio.TimeoutError: The request timed out
        """
        ...

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        ...
