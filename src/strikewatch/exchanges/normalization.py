"""Symbol and topic normalization for HTX market-data channels."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "market."
TOPIC_SUFFIX = ".ticker"


def normalize_symbol(symbol: str) -> str:
    """Normalize a symbol to the exchange's wire format.

    Converts various symbol formats to lowercase concatenated form:
    - BTCUSDT -> btcusdt
    - BTC-USDT -> btcusdt
    - BTC/USDT -> btcusdt
    """
    if not symbol:
        return symbol
    return symbol.strip().replace("-", "").replace("/", "").replace(" ", "").lower()


def ticker_topic(symbol: str) -> str:
    """Build the ticker channel name for a symbol."""
    return f"{TOPIC_PREFIX}{normalize_symbol(symbol)}{TOPIC_SUFFIX}"


def symbol_from_topic(topic: str) -> str | None:
    """Extract the symbol from a ``market.<symbol>.ticker`` channel name."""
    if not topic or not topic.startswith(TOPIC_PREFIX) or not topic.endswith(TOPIC_SUFFIX):
        return None
    symbol = topic[len(TOPIC_PREFIX) : -len(TOPIC_SUFFIX)]
    if not symbol or "." in symbol:
        logger.debug("Unrecognized channel name: %s", topic)
        return None
    return symbol
