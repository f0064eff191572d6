"""Notification side channel for background polling."""

from .contracts import Notification, NotificationKind, NotificationLevel, Notifier
from .service import CollectingNotifier, LoggingNotifier, NotificationHub

__all__ = ["CollectingNotifier", "LoggingNotifier", "Notification", "NotificationHub", "NotificationKind", "NotificationLevel", "Notifier"]
