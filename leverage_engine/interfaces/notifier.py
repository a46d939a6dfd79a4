"""Notifier protocol: position event channel abstraction."""
from typing import Protocol

from ..models import PositionEvent


class Notifier(Protocol):
    """Abstract interface for publishing position notifications."""

    async def publish(self, event: PositionEvent) -> bool: ...
