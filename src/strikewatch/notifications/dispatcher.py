"""Outbound notification delivery."""

from __future__ import annotations

import logging
from typing import Protocol

import aiohttp

from ..settings import TelegramSettings
from .models import ApeInNotification, Notification, StartupNotice, StrikeNotification

logger = logging.getLogger(__name__)


def format_notification(notification: Notification, *, user_name: str = "strikewatch") -> str:
    """Render a notification as a human-readable message."""
    if isinstance(notification, StrikeNotification):
        return (
            f"{notification.symbol} strike #{notification.strike_count}\n"
            f"Last price: {notification.last_price:g} {notification.quote_currency}\n"
            f"Unit: {notification.unit_percent * 100:g}%"
        )
    if isinstance(notification, ApeInNotification):
        return f"{notification.symbol} ape in: {notification.percent_change:.2f}% from high"
    if isinstance(notification, StartupNotice):
        started = notification.started_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        return f"{user_name}: {notification.service} started at {started}"
    raise TypeError(f"Unsupported notification: {notification!r}")


class Dispatcher(Protocol):
    """Protocol for notification delivery channels."""

    async def send(self, notification: Notification) -> bool:
        """Deliver one notification.

        Returns:
            True if the channel accepted the message
        """
        ...

    async def close(self) -> None:
        """Release channel resources."""
        ...


class LoggingDispatcher:
    """Writes notifications to the log only."""

    def __init__(self, user_name: str = "strikewatch") -> None:
        self.user_name = user_name

    async def send(self, notification: Notification) -> bool:
        logger.info("NOTIFY %s", format_notification(notification, user_name=self.user_name))
        return True

    async def close(self) -> None:
        pass


class TelegramDispatcher:
    """Sends notifications through the Telegram Bot API.

    Strike alerts and the startup notice go through the strike bot; ape-in
    alerts use their own bot when one is configured.
    """

    def __init__(self, settings: TelegramSettings) -> None:
        if not settings.chat_id or settings.strike_bot_token is None:
            raise ValueError("telegram requires chat_id and strike_bot_token")
        self.settings = settings
        self.session: aiohttp.ClientSession | None = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self.session

    def _token_for(self, notification: Notification) -> str:
        token = self.settings.strike_bot_token
        if isinstance(notification, ApeInNotification) and self.settings.ape_in_bot_token:
            token = self.settings.ape_in_bot_token
        return token.get_secret_value()

    async def send(self, notification: Notification) -> bool:
        session = await self._ensure_session()
        url = f"{self.settings.api_url.rstrip('/')}/bot{self._token_for(notification)}/sendMessage"
        payload = {
            "chat_id": self.settings.chat_id,
            "text": format_notification(notification, user_name=self.settings.user_name),
            "disable_web_page_preview": True,
        }

        try:
            async with session.post(url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.error("Telegram rejected message: %s %s", resp.status, body[:200])
                    return False
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("Telegram delivery failed: %s", e)
            return False
        return True

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None


def build_dispatcher(settings: TelegramSettings) -> Dispatcher:
    """Pick the delivery channel from settings."""
    if settings.enabled:
        return TelegramDispatcher(settings)
    return LoggingDispatcher(settings.user_name)
