"""Telegram notification service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import CollateralAdded, PositionEvent
from .formatting import format_event

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send position events via a Telegram bot."""

    def __init__(self, config: TelegramConfig) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id

    async def _send_message(self, message: str, silent: bool = False) -> bool:
        """Send Telegram message using the configured bot."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False

    async def publish(self, event: PositionEvent) -> bool:
        """Send one position event; collateral top-ups go out silently."""
        silent = isinstance(event, CollateralAdded)
        if await self._send_message(format_event(event), silent=silent):
            logger.info("Telegram notification sent for %s", type(event).__name__)
            return True
        return False
