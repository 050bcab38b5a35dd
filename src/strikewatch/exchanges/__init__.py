"""Exchange catalogue client and market-data wire layer."""

from .protocol import CatalogueClient, CatalogueError, SymbolDescriptor, Tick
from .normalization import normalize_symbol, ticker_topic, symbol_from_topic
from .htx import HTXCatalogueClient, FrameDecodeError, decode_frame

__all__ = [
    "CatalogueClient",
    "CatalogueError",
    "SymbolDescriptor",
    "Tick",
    "normalize_symbol",
    "ticker_topic",
    "symbol_from_topic",
    "HTXCatalogueClient",
    "FrameDecodeError",
    "decode_frame",
]
