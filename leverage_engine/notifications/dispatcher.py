"""Fan-out of position events to every configured notifier."""
from __future__ import annotations

import logging

from ..interfaces.notifier import Notifier
from ..models import PositionEvent

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Publishes events to all notifiers; a failing notifier never fails the operation."""

    def __init__(self, notifiers: list[Notifier] | None = None) -> None:
        self._notifiers: list[Notifier] = list(notifiers or [])

    def add(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)

    async def publish(self, event: PositionEvent) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.publish(event)
            except Exception as e:
                logger.error(
                    "Notifier %s failed for %s: %s",
                    type(notifier).__name__, type(event).__name__, e,
                )
