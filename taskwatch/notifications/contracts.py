"""Contracts for the tracker's notification side channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class NotificationKind(str, Enum):
  """Events surfaced by background polling."""

  JOB_SUCCEEDED = "job_succeeded"
  JOB_FAILED = "job_failed"
  POLL_TIMEOUT = "poll_timeout"
  POLL_DEGRADED = "poll_degraded"


class NotificationLevel(str, Enum):
  INFO = "info"
  WARNING = "warning"
  ERROR = "error"

  @property
  def logging_level(self) -> int:
    return {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}[self.value]


@dataclass(frozen=True)
class Notification:
  """Represents one user-facing notice about a tracked job."""

  kind: NotificationKind
  job_id: str
  message: str
  level: NotificationLevel = NotificationLevel.INFO


class Notifier(Protocol):
  """Delivery contract for notifications; must not raise into the poller."""

  def notify(self, notification: Notification) -> None:
    """Deliver one notification."""
