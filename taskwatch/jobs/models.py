"""Domain models for asynchronous generation jobs observed from the client."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

UNKNOWN_ERROR = "unknown error"
# Progress shown while the server reports success but has not stored the output yet.
PENDING_OUTPUT_PROGRESS = 95


class JobStatus(str, Enum):
  """Lifecycle states, ordered submitted < queued < running < terminal."""

  SUBMITTED = "submitted"
  QUEUED = "queued"
  RUNNING = "running"
  SUCCEEDED = "succeeded"
  FAILED = "failed"

  @property
  def rank(self) -> int:
    """Position along the monotonic lifecycle; both terminal states share the top rank."""
    return _STATUS_RANK[self]

  @property
  def is_terminal(self) -> bool:
    return self in TERMINAL_STATUSES

  @classmethod
  def parse(cls, raw: str | JobStatus) -> JobStatus:
    """Map a server status string (including legacy aliases) onto JobStatus."""
    if isinstance(raw, JobStatus):
      return raw
    normalized = str(raw).strip().lower()
    try:
      return cls(normalized)
    except ValueError:
      pass
    alias = _STATUS_ALIASES.get(normalized)
    if alias is None:
      raise ValueError(f"Unknown job status: {raw!r}")
    return alias


_STATUS_RANK = {JobStatus.SUBMITTED: 0, JobStatus.QUEUED: 1, JobStatus.RUNNING: 2, JobStatus.SUCCEEDED: 3, JobStatus.FAILED: 3}
_STATUS_ALIASES = {
  "pending": JobStatus.QUEUED,
  "processing": JobStatus.RUNNING,
  "done": JobStatus.SUCCEEDED,
  "completed": JobStatus.SUCCEEDED,
  "error": JobStatus.FAILED,
  "canceled": JobStatus.FAILED,
  "cancelled": JobStatus.FAILED,
}
TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})


@dataclass(frozen=True)
class Job:
  """Immutable snapshot of one generation job as displayed to the user.

  Updates always build a new instance (``dataclasses.replace``) so a reader
  holding a reference sees either the old or the new record, never a mix.
  """

  id: str
  client_handle: str
  status: JobStatus
  progress: int = 0
  result_refs: tuple[str, ...] = ()
  error_info: str | None = None
  submitted_at: float = 0.0
  record_id: str | None = None
  title: str | None = None
  metadata: Mapping[str, Any] = field(default_factory=dict)

  def __post_init__(self) -> None:
    object.__setattr__(self, "status", JobStatus.parse(self.status))
    object.__setattr__(self, "result_refs", tuple(self.result_refs))
    if not isinstance(self.metadata, MappingProxyType):
      object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    if not 0 <= self.progress <= 100:
      raise ValueError(f"Job {self.id}: progress {self.progress} outside 0..100.")

    has_refs = bool(self.result_refs)
    has_error = bool(self.error_info)
    if self.status is JobStatus.SUCCEEDED and (not has_refs or has_error):
      raise ValueError(f"Job {self.id}: succeeded jobs carry result refs and no error.")
    if self.status is JobStatus.FAILED and (not has_error or has_refs):
      raise ValueError(f"Job {self.id}: failed jobs carry error info and no result refs.")
    if not self.status.is_terminal and (has_refs or has_error):
      raise ValueError(f"Job {self.id}: non-terminal jobs carry neither result refs nor error info.")

  @property
  def is_terminal(self) -> bool:
    return self.status.is_terminal


@dataclass(frozen=True)
class StatusReport:
  """One answer of the remote status endpoint."""

  status: JobStatus
  progress: int | None = None
  result_refs: tuple[str, ...] = ()
  error_info: str | None = None


@dataclass(frozen=True)
class Pagination:
  """Page metadata returned alongside a job list."""

  total: int = 0
  page: int = 1
  limit: int = 20


@dataclass(frozen=True)
class ListFilters:
  """Optional filters for the remote job list."""

  status: JobStatus | None = None
  is_favorite: bool | None = None
  model_id: str | None = None

  def as_params(self) -> dict[str, str]:
    """Render the filters as query parameters, skipping unset ones."""

    params: dict[str, str] = {}
    if self.status is not None:
      params["status"] = self.status.value
    if self.is_favorite is not None:
      params["is_favorite"] = "true" if self.is_favorite else "false"
    if self.model_id is not None:
      params["model_id"] = str(self.model_id)
    return params


def _clamp_progress(raw: Any) -> int | None:
  if raw is None or isinstance(raw, bool):
    return None
  try:
    value = int(raw)
  except (TypeError, ValueError):
    return None
  return max(0, min(value, 100))


def normalize_job(
  *,
  job_id: str,
  status: str | JobStatus,
  progress: Any = None,
  result_refs: Iterable[str | None] = (),
  error_info: str | None = None,
  client_handle: str | None = None,
  submitted_at: float = 0.0,
  record_id: str | None = None,
  title: str | None = None,
  metadata: Mapping[str, Any] | None = None,
) -> Job:
  """Build a Job from loosely-shaped data, repairing terminal-field combinations."""

  parsed = JobStatus.parse(status)
  refs = tuple(ref for ref in result_refs if ref)
  error = (error_info or "").strip() or None
  percent = _clamp_progress(progress)

  if parsed is JobStatus.SUCCEEDED and not refs:
    # Output not stored yet; keep the job in flight.
    parsed = JobStatus.RUNNING
    percent = PENDING_OUTPUT_PROGRESS

  if parsed is JobStatus.SUCCEEDED:
    error = None
    percent = 100
  elif parsed is JobStatus.FAILED:
    refs = ()
    error = error or UNKNOWN_ERROR
  else:
    refs = ()
    error = None

  return Job(
    id=job_id,
    client_handle=client_handle or job_id,
    status=parsed,
    progress=percent if percent is not None else 0,
    result_refs=refs,
    error_info=error,
    submitted_at=submitted_at,
    record_id=record_id,
    title=title,
    metadata=metadata or {},
  )
