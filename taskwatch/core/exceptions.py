"""Error taxonomy shared by the tracker and the remote job service client."""

from __future__ import annotations

from enum import Enum


class TaskwatchError(Exception):
  """Base class for all taskwatch failures."""


class RemoteServiceError(TaskwatchError):
  """Generic failure talking to the remote job service."""


class SubmissionFailureReason(str, Enum):
  """Why a generation request was not accepted."""

  VALIDATION = "validation"
  QUOTA = "quota"
  REJECTED = "rejected"
  TRANSPORT = "transport"


class SubmissionFailedError(RemoteServiceError):
  """Raised when a job could not be submitted; nothing is tracked."""

  def __init__(self, reason: SubmissionFailureReason, message: str) -> None:
    super().__init__(message)
    self.reason = reason
    self.message = message

  @property
  def is_quota(self) -> bool:
    """True when the caller should prompt the user to top up credits."""
    return self.reason is SubmissionFailureReason.QUOTA

  def __str__(self) -> str:
    return f"{self.reason.value}: {self.message}"


class RemoteTransportError(RemoteServiceError):
  """Transient network or server failure; safe to retry."""


class JobNotFoundError(RemoteServiceError):
  """The remote service does not know the job (e.g. deleted elsewhere)."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found.")
    self.job_id = job_id


class RefreshFailedError(RemoteServiceError):
  """Fetching the job list failed."""
