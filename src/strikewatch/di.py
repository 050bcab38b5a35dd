from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exchanges.htx import HTXCatalogueClient
from .exchanges.protocol import CatalogueClient
from .notifications.dispatcher import Dispatcher, build_dispatcher

if TYPE_CHECKING:
    from .settings import Settings


@dataclass(slots=True)
class AppContainer:
    settings: "Settings"
    catalogue_client: CatalogueClient
    dispatcher: Dispatcher
    shutdown: asyncio.Event = field(default_factory=asyncio.Event)


def build_container(
    settings: "Settings",
    catalogue_client: CatalogueClient | None = None,
    dispatcher: Dispatcher | None = None,
) -> AppContainer:
    """Build application container with the exchange and delivery collaborators."""
    client = catalogue_client or HTXCatalogueClient(
        settings.exchange.rest_url,
        timeout=settings.catalogue.request_timeout_seconds,
    )
    return AppContainer(
        settings=settings,
        catalogue_client=client,
        dispatcher=dispatcher or build_dispatcher(settings.telegram),
    )
