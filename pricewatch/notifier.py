"""Notification transports.

A notifier exposes ``async send(message) -> bool`` and never raises:
delivery problems are logged and reported as False.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from . import config

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class Notifier(Protocol):
    async def send(self, message: str) -> bool: ...


class TelegramNotifier:
    """Send HTML-formatted messages to a Telegram chat via the Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{TELEGRAM_API_BASE}/bot{self.bot_token}/sendMessage"

    async def send(self, message: str) -> bool:
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error sending Telegram notification: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Telegram API error {response.status_code}: {response.text[:200]}")
            return False
        return True


class LogNotifier:
    """Fallback used when no transport is configured: writes messages to the log."""

    async def send(self, message: str) -> bool:
        logger.info(f"Notification (log only): {message}")
        return True


def build_notifier() -> Notifier:
    """Pick the Telegram notifier when credentials are configured."""
    if config.TELEGRAM_BOT_TOKEN and config.TELEGRAM_CHAT_ID:
        return TelegramNotifier(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_CHAT_ID)
    logger.warning("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set, notifications go to the log")
    return LogNotifier()
