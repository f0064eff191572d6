"""Client-side tracking of long-running generation jobs.

The tracker owns two pieces of bookkeeping:

- the tracked set: jobs currently being polled, with their last known state;
- the completed set: recently finished jobs whose terminal fields are frozen
  so that a stale list refresh cannot drag them back to a running state.

Everything runs on one event loop. Polls are detached timer callbacks; after
every network await the tracker re-checks that the job is still tracked by
the same entry, which makes late answers for cancelled or finished jobs
no-ops without aborting the HTTP request itself.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from functools import partial
from typing import Any

from pydantic import ValidationError

from taskwatch.core.exceptions import JobNotFoundError, RemoteServiceError, SubmissionFailedError, SubmissionFailureReason
from taskwatch.jobs.completed import CompletedEntry, CompletedSet
from taskwatch.jobs.merge import merge_status_report, reconcile_list
from taskwatch.jobs.models import Job, JobStatus, ListFilters, Pagination, normalize_job
from taskwatch.jobs.scheduler import ScheduledHandle, Scheduler
from taskwatch.jobs.store import JobListStore
from taskwatch.notifications.contracts import Notification, NotificationKind, NotificationLevel, Notifier
from taskwatch.services.contracts import RemoteJobService
from taskwatch.services.requests import GenerationRequest
from taskwatch.utils.backoff import next_backoff
from taskwatch.utils.ids import generate_client_handle

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class TrackerSettings:
  """Polling and retention knobs."""

  poll_interval: float = 5.0
  poll_timeout: float = 600.0
  backoff_cap: float = 60.0
  transport_warning_threshold: int = 3
  completed_retention: float = 24 * 60 * 60
  completed_max_entries: int = 500
  page_size: int = 20


@dataclass
class TrackedEntry:
  """Bookkeeping for one job being polled."""

  job: Job
  started_at: float
  interval: float
  transport_failures: int = 0
  warned: bool = False
  handle: ScheduledHandle | None = None


class TaskTracker:
  """Tracks submitted jobs until they finish, without ever regressing their status."""

  def __init__(
    self,
    *,
    service: RemoteJobService,
    store: JobListStore,
    notifier: Notifier,
    scheduler: Scheduler,
    settings: TrackerSettings | None = None,
    monotonic: Clock = time.monotonic,
    wall: Clock = time.time,
  ) -> None:
    self._service = service
    self._store = store
    self._notifier = notifier
    self._scheduler = scheduler
    self._settings = settings or TrackerSettings()
    self._monotonic = monotonic
    self._wall = wall
    self._tracked: dict[str, TrackedEntry] = {}
    self._completed = CompletedSet(retention_seconds=self._settings.completed_retention, max_entries=self._settings.completed_max_entries)
    # Wall time at which polling gave up, per job id.
    self._timed_out: dict[str, float] = {}
    self._filters = ListFilters()
    self._page = 1
    self._limit = self._settings.page_size

  @property
  def store(self) -> JobListStore:
    return self._store

  @property
  def settings(self) -> TrackerSettings:
    return self._settings

  @property
  def tracked_ids(self) -> frozenset[str]:
    return frozenset(self._tracked)

  @property
  def completed(self) -> Mapping[str, CompletedEntry]:
    """Read-only snapshot of the completed set."""
    return self._completed.snapshot()

  def is_tracked(self, job_id: str) -> bool:
    return job_id in self._tracked

  def tracked_job(self, job_id: str) -> Job | None:
    entry = self._tracked.get(job_id)
    return entry.job if entry is not None else None

  async def submit(self, request: GenerationRequest | Mapping[str, Any]) -> Job:
    """Submit a job, start polling it and refresh the list so it shows up."""

    if not isinstance(request, GenerationRequest):
      try:
        request = GenerationRequest.model_validate(dict(request))
      except ValidationError as exc:
        raise SubmissionFailedError(SubmissionFailureReason.VALIDATION, str(exc)) from exc

    # Failures propagate to the caller; nothing is tracked for them.
    receipt = await self._service.submit(request)

    job = normalize_job(
      job_id=receipt.job_id,
      status=receipt.initial_status,
      client_handle=generate_client_handle(),
      submitted_at=self._wall(),
      record_id=receipt.record_id,
      title=request.prompt,
    )
    if job.is_terminal:
      self._finalize(job)
    else:
      self._track(job)

    try:
      await self.refresh()
    except RemoteServiceError as exc:
      logger.warning("List refresh after submitting job %s failed: %s", job.id, exc)

    current = self.tracked_job(job.id) or self._store.get(job.id) or job
    if self._store.prepend(current):
      logger.debug("Job %s not in refreshed list yet; shown at the top", job.id)
    return current

  def watch(self, job: Job) -> bool:
    """Start polling an existing non-terminal job; returns False when nothing changed.

    Jobs whose polling timed out are not picked up again until the retention
    window has passed or ``cancel_tracking`` forgets them.
    """

    if job.is_terminal or job.id in self._tracked or job.id in self._completed:
      return False
    if job.id in self._timed_out:
      logger.debug("Not resuming job %s; polling timed out at %.0f", job.id, self._timed_out[job.id])
      return False
    self._track(job)
    logger.info("Resumed tracking of job %s (%s)", job.id, job.status.value)
    return True

  async def poll(self, job_id: str) -> None:
    """Ask the service for the job's status once and act on the answer."""

    entry = self._tracked.get(job_id)
    if entry is None:
      logger.debug("Poll for untracked job %s ignored", job_id)
      return

    if self._monotonic() - entry.started_at > self._settings.poll_timeout:
      self._abandon(entry)
      return

    try:
      report = await self._service.status(job_id)
    except JobNotFoundError:
      if self._tracked.get(job_id) is entry:
        self._untrack(job_id)
        logger.info("Job %s no longer exists on the server; stopped tracking", job_id)
      return
    except RemoteServiceError as exc:
      if self._tracked.get(job_id) is entry:
        self._back_off(entry, exc)
      return
    except Exception as exc:  # noqa: BLE001
      logger.error("Unexpected error polling job %s", job_id, exc_info=True)
      if self._tracked.get(job_id) is entry:
        self._back_off(entry, exc)
      return

    # Cancelled, finished or re-tracked while the request was in flight.
    if self._tracked.get(job_id) is not entry:
      logger.debug("Dropping late status for job %s", job_id)
      return

    entry.transport_failures = 0
    entry.warned = False
    entry.interval = self._settings.poll_interval

    merged = merge_status_report(entry.job, report)
    if merged.is_terminal:
      self._finalize(merged)
      return

    entry.job = merged
    self._publish(merged)
    self._schedule(entry, self._settings.poll_interval)

  def merge_list_refresh(self, remote_jobs: Iterable[Job]) -> tuple[Job, ...]:
    """Reconcile an authoritative list with local state; never schedules polls."""

    self.purge_completed()
    tracked = {job_id: entry.job for job_id, entry in self._tracked.items()}
    outcome = reconcile_list(remote_jobs, tracked=tracked, completed=self._completed.snapshot())

    for job_id, job in outcome.tracked_updates.items():
      entry = self._tracked.get(job_id)
      if entry is not None and not job.is_terminal:
        entry.job = job

    for job in outcome.newly_terminal:
      logger.info("Job %s finished according to the list (%s)", job.id, job.status.value)
      self._finalize(job, display=False)

    return outcome.jobs

  async def refresh(self, filters: ListFilters | None = None, page: int | None = None, limit: int | None = None, *, resume: bool = True) -> tuple[Job, ...]:
    """Fetch the job list, merge it and publish it to the store.

    With ``resume`` every unfinished job on the page that is not tracked yet
    starts being polled.
    """

    if filters is not None:
      self._filters = filters
    if page is not None:
      self._page = page
    if limit is not None:
      self._limit = limit

    result = await self._service.list(self._filters, Pagination(page=self._page, limit=self._limit))
    merged = self.merge_list_refresh(result.items)
    self._store.replace(merged, result.pagination)

    if resume:
      for job in merged:
        self.watch(job)

    return merged

  def cancel_tracking(self, job_id: str) -> None:
    """Forget a job entirely; a poll already in flight becomes a no-op."""

    was_tracked = self._untrack(job_id)
    was_completed = self._completed.discard(job_id)
    was_timed_out = self._timed_out.pop(job_id, None) is not None
    if was_tracked or was_completed or was_timed_out:
      logger.debug("Cancelled tracking of job %s", job_id)

  async def delete_job(self, job_id: str) -> bool:
    """Delete a job on the server, then drop every local trace of it."""

    job = self._store.get(job_id) or self.tracked_job(job_id)
    if job is None:
      return False

    await self._service.delete(job.record_id or job.id)
    self.cancel_tracking(job_id)
    self._store.remove(job_id)
    logger.info("Deleted job %s", job_id)
    return True

  async def toggle_favorite(self, job_id: str) -> Job | None:
    """Flip the job's favourite flag on the server and mirror it on its row."""
    return await self._toggle_flag(job_id, "is_favorite", self._service.toggle_favorite)

  async def toggle_public(self, job_id: str) -> Job | None:
    """Flip whether the job is shown in the public gallery."""
    return await self._toggle_flag(job_id, "is_public", self._service.toggle_public)

  async def _toggle_flag(self, job_id: str, key: str, call: Callable[[str], Awaitable[bool | None]]) -> Job | None:
    job = self._store.get(job_id) or self.tracked_job(job_id)
    if job is None:
      return None

    value = await call(job.record_id or job.id)
    if value is None:
      value = not job.metadata.get(key)

    # Re-read after the await; the row may have been swapped or removed meanwhile.
    entry = self._tracked.get(job_id)
    if entry is not None:
      entry.job = replace(entry.job, metadata={**entry.job.metadata, key: value})
    current = self._store.get(job_id)
    if current is None:
      return entry.job if entry is not None else None
    logger.info("Job %s %s=%s", job_id, key, value)
    return self._store.patch(job_id, metadata={**current.metadata, key: value})

  def purge_completed(self) -> int:
    """Drop expired completed entries and timed-out markers; return how many completed entries went."""

    now = self._wall()
    cutoff = now - self._settings.completed_retention
    for job_id in [job_id for job_id, at in self._timed_out.items() if at <= cutoff]:
      del self._timed_out[job_id]
    return self._completed.purge_expired(now=now)

  async def aclose(self) -> None:
    """Stop polling everything (e.g. when the view goes away)."""

    for entry in self._tracked.values():
      if entry.handle is not None:
        entry.handle.cancel()
    self._tracked.clear()

  def _track(self, job: Job) -> None:
    entry = TrackedEntry(job=job, started_at=self._monotonic(), interval=self._settings.poll_interval)
    previous = self._tracked.get(job.id)
    if previous is not None and previous.handle is not None:
      previous.handle.cancel()
    self._tracked[job.id] = entry
    self._schedule(entry, entry.interval)

  def _schedule(self, entry: TrackedEntry, delay: float) -> None:
    # At most one pending timer per job.
    if entry.handle is not None:
      entry.handle.cancel()
    entry.handle = self._scheduler.call_later(delay, partial(self.poll, entry.job.id))

  def _untrack(self, job_id: str) -> bool:
    entry = self._tracked.pop(job_id, None)
    if entry is None:
      return False
    if entry.handle is not None:
      entry.handle.cancel()
    return True

  def _finalize(self, job: Job, *, display: bool = True) -> None:
    self._untrack(job.id)
    self._completed.record(job, now=self._wall())
    if display:
      self._publish(job)

    if job.status is JobStatus.SUCCEEDED:
      logger.info("Job %s succeeded", job.id)
      self._notify(NotificationKind.JOB_SUCCEEDED, job.id, "Video generation finished.", NotificationLevel.INFO)
    else:
      logger.info("Job %s failed: %s", job.id, job.error_info)
      self._notify(NotificationKind.JOB_FAILED, job.id, f"Video generation failed: {job.error_info}", NotificationLevel.ERROR)

  def _abandon(self, entry: TrackedEntry) -> None:
    job_id = entry.job.id
    self._untrack(job_id)
    self._timed_out[job_id] = self._wall()
    logger.warning("Stopped polling job %s after %.0fs; last status %s", job_id, self._settings.poll_timeout, entry.job.status.value)
    self._notify(NotificationKind.POLL_TIMEOUT, job_id, "Still processing, check back later.", NotificationLevel.WARNING)

  def _back_off(self, entry: TrackedEntry, exc: Exception) -> None:
    entry.transport_failures += 1
    entry.interval = next_backoff(entry.interval, cap=self._settings.backoff_cap)
    logger.warning("Polling job %s failed (%d in a row), retrying in %.1fs: %s", entry.job.id, entry.transport_failures, entry.interval, exc)

    if entry.transport_failures >= self._settings.transport_warning_threshold and not entry.warned:
      entry.warned = True
      self._notify(NotificationKind.POLL_DEGRADED, entry.job.id, "Having trouble checking the job status; still trying.", NotificationLevel.WARNING)

    self._schedule(entry, entry.interval)

  def _notify(self, kind: NotificationKind, job_id: str, message: str, level: NotificationLevel) -> None:
    try:
      self._notifier.notify(Notification(kind=kind, job_id=job_id, message=message, level=level))
    except Exception:  # noqa: BLE001
      logger.error("Notifier failed for %s on job %s", kind.value, job_id, exc_info=True)

  def _publish(self, job: Job) -> None:
    # Only lifecycle fields; the row keeps whatever descriptive fields the list gave it.
    self._store.patch(job.id, status=job.status, progress=job.progress, result_refs=job.result_refs, error_info=job.error_info)
