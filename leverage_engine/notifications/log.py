"""Notifier that writes position events to the logger."""
import logging

from ..models import PositionEvent
from .formatting import format_event

logger = logging.getLogger(__name__)


class LogNotifier:
    """Log each position event at INFO."""

    async def publish(self, event: PositionEvent) -> bool:
        logger.info("%s", format_event(event).replace("\n", " | "))
        return True
