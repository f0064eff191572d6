"""Retention buffer of recently finished jobs used to reject stale regressions."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterator
from dataclasses import dataclass

from taskwatch.jobs.models import Job, JobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletedEntry:
  """Frozen terminal fields of one finished job."""

  job_id: str
  status: JobStatus
  result_refs: tuple[str, ...]
  error_info: str | None
  completed_at: float


class CompletedSet:
  """Ordered map of terminal jobs, bounded by age and by size.

  Expiry is hygiene only: once an entry ages out no stale list refresh
  referencing it is expected any more.
  """

  def __init__(self, *, retention_seconds: float, max_entries: int) -> None:
    if retention_seconds <= 0:
      raise ValueError("retention_seconds must be positive.")
    if max_entries < 1:
      raise ValueError("max_entries must be at least 1.")
    self._retention = retention_seconds
    self._max_entries = max_entries
    self._entries: OrderedDict[str, CompletedEntry] = OrderedDict()

  def record(self, job: Job, *, now: float) -> CompletedEntry:
    """Freeze the terminal fields of ``job``; an existing entry wins."""

    if not job.is_terminal:
      raise ValueError(f"Job {job.id} is not terminal ({job.status.value}).")

    existing = self._entries.get(job.id)
    if existing is not None:
      if existing.status is not job.status:
        logger.warning("Ignoring conflicting terminal status for job %s: kept=%s got=%s", job.id, existing.status.value, job.status.value)
      return existing

    entry = CompletedEntry(job_id=job.id, status=job.status, result_refs=job.result_refs, error_info=job.error_info, completed_at=now)
    self._entries[job.id] = entry

    while len(self._entries) > self._max_entries:
      evicted_id, _ = self._entries.popitem(last=False)
      logger.debug("Evicted completed job %s (max_entries=%d)", evicted_id, self._max_entries)

    return entry

  def get(self, job_id: str) -> CompletedEntry | None:
    return self._entries.get(job_id)

  def discard(self, job_id: str) -> bool:
    return self._entries.pop(job_id, None) is not None

  def purge_expired(self, *, now: float) -> int:
    """Drop entries older than the retention window; return how many went."""

    cutoff = now - self._retention
    expired = [job_id for job_id, entry in self._entries.items() if entry.completed_at <= cutoff]
    for job_id in expired:
      del self._entries[job_id]
    if expired:
      logger.debug("Purged %d expired completed job(s)", len(expired))
    return len(expired)

  def snapshot(self) -> dict[str, CompletedEntry]:
    return dict(self._entries)

  def __contains__(self, job_id: object) -> bool:
    return job_id in self._entries

  def __len__(self) -> int:
    return len(self._entries)

  def __iter__(self) -> Iterator[str]:
    return iter(list(self._entries))
