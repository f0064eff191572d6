import logging
from unittest.mock import MagicMock

from taskwatch.notifications import CollectingNotifier, LoggingNotifier, Notification, NotificationHub, NotificationKind, NotificationLevel


def _notice(kind=NotificationKind.JOB_SUCCEEDED, level=NotificationLevel.INFO):
  return Notification(kind=kind, job_id="J1", message="Video generation finished.", level=level)


def test_logging_notifier_uses_notification_level(caplog):
  with caplog.at_level(logging.INFO, logger="taskwatch.notifications.service"):
    LoggingNotifier().notify(_notice(NotificationKind.POLL_TIMEOUT, NotificationLevel.WARNING))

  (record,) = caplog.records
  assert record.levelno == logging.WARNING
  assert "poll_timeout" in record.getMessage()
  assert "J1" in record.getMessage()


def test_hub_delivers_past_failing_subscriber(caplog):
  broken = MagicMock()
  broken.notify.side_effect = RuntimeError("push service down")
  collected = CollectingNotifier()
  hub = NotificationHub(broken, collected)

  with caplog.at_level(logging.ERROR, logger="taskwatch.notifications.service"):
    hub.notify(_notice())

  assert len(collected.notifications) == 1
  assert "subscriber" in caplog.text


def test_hub_unsubscribe():
  collected = CollectingNotifier()
  hub = NotificationHub()
  unsubscribe = hub.subscribe(collected)

  hub.notify(_notice())
  unsubscribe()
  hub.notify(_notice())

  assert len(collected.notifications) == 1


def test_collecting_notifier_filters_by_kind():
  collected = CollectingNotifier()
  collected.notify(_notice())
  collected.notify(_notice(NotificationKind.JOB_FAILED, NotificationLevel.ERROR))

  assert [item.kind for item in collected.of_kind(NotificationKind.JOB_FAILED)] == [NotificationKind.JOB_FAILED]
