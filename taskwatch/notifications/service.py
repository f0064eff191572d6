"""Notifier implementations."""

from __future__ import annotations

import logging
from collections.abc import Callable

from taskwatch.notifications.contracts import Notification, NotificationKind, Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier:
  """Writes notifications to the ``taskwatch.notifications`` logger."""

  def __init__(self, log: logging.Logger | None = None) -> None:
    self._log = log or logger

  def notify(self, notification: Notification) -> None:
    self._log.log(notification.level.logging_level, "[%s] job=%s %s", notification.kind.value, notification.job_id, notification.message)


class CollectingNotifier:
  """Keeps every notification in memory."""

  def __init__(self) -> None:
    self.notifications: list[Notification] = []

  def notify(self, notification: Notification) -> None:
    self.notifications.append(notification)

  def of_kind(self, kind: NotificationKind) -> list[Notification]:
    return [item for item in self.notifications if item.kind is kind]


class NotificationHub:
  """Fans notifications out to subscribers on a best-effort basis."""

  def __init__(self, *subscribers: Notifier) -> None:
    self._subscribers: list[Notifier] = list(subscribers)

  def subscribe(self, subscriber: Notifier) -> Callable[[], None]:
    self._subscribers.append(subscriber)

    def unsubscribe() -> None:
      if subscriber in self._subscribers:
        self._subscribers.remove(subscriber)

    return unsubscribe

  def notify(self, notification: Notification) -> None:
    for subscriber in list(self._subscribers):
      try:
        subscriber.notify(notification)
      except Exception:  # noqa: BLE001
        # A broken subscriber must not stop delivery to the others or reach the poller.
        logger.error("Notification subscriber %r failed for %s", subscriber, notification.kind.value, exc_info=True)
