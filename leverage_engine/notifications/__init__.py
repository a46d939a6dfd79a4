"""Notification modules."""
from .dispatcher import NotificationDispatcher
from .log import LogNotifier
from .telegram import TelegramNotifier

__all__ = ["LogNotifier", "NotificationDispatcher", "TelegramNotifier"]
