"""
Cart Notification Sinks

Fire-and-forget delivery of user-visible confirmations ("Added X to cart").
Delivery problems are logged by the sink or by the cart store and never
affect cart state.
"""

import os
from typing import Optional, Protocol

import httpx

from cakecart.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN", "")
TELEGRAM_API_URL = "https://api.telegram.org"
NO_RESPONSE_BODY = "No response body"
MAX_MESSAGE_LENGTH = 4096


class NotificationSink(Protocol):
    """Anything that can show a short message to the user."""

    async def notify(self, message: str) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the log (headless runs, development)."""

    def __init__(self, logger_name: str = "cakecart.notifications"):
        self._logger = get_logger(logger_name)

    async def notify(self, message: str) -> None:
        self._logger.info(f"Cart notification: {sanitize_string_for_logging(message, 200)}")


def _truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to Telegram's limit."""
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


class TelegramNotificationSink:
    """
    Sends cart notifications to a Telegram chat.

    One attempt per message; retries belong to whoever owns the bot.
    """

    def __init__(
        self,
        chat_id: int,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.chat_id = chat_id
        self.token = token or TELEGRAM_TOKEN
        self.timeout = timeout
        self._client = client

    @property
    def url(self) -> str:
        return f"{TELEGRAM_API_URL}/bot{self.token}/sendMessage"

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(self.url, json=payload, timeout=self.timeout)

    async def notify(self, message: str) -> bool:
        """Send the message. Returns True if Telegram accepted it."""
        if not self.token:
            logger.warning("TELEGRAM_TOKEN not set, dropping cart notification")
            return False

        payload = {"chat_id": self.chat_id, "text": _truncate_message(message)}

        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as e:
            logger.warning(f"Telegram notification failed for chat {self.chat_id}: {type(e).__name__}: {e}")
            return False

        if response.status_code != 200:
            error_text = response.text[:200] if response.text else NO_RESPONSE_BODY
            logger.warning(f"Telegram API error {response.status_code} for chat {self.chat_id}: {error_text}")
            return False

        logger.debug(f"Cart notification sent to {self.chat_id}")
        return True
