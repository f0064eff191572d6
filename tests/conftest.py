"""Shared fakes: a controllable clock, a manual scheduler and an in-memory job service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from taskwatch.core.exceptions import SubmissionFailedError
from taskwatch.jobs.models import JobStatus, ListFilters, Pagination, StatusReport
from taskwatch.jobs.scheduler import ScheduledCallback
from taskwatch.jobs.store import JobListStore
from taskwatch.jobs.tracker import TaskTracker, TrackerSettings
from taskwatch.notifications.service import CollectingNotifier
from taskwatch.services.contracts import JobPage, SubmitReceipt, UsageStats, VideoModel
from taskwatch.services.requests import GenerationRequest

START = 1_700_000_000.0


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FakeClock:
  """Clock whose time only moves when told to."""

  def __init__(self, now: float = START) -> None:
    self.now = now

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds


@dataclass
class ManualHandle:
  due: float
  callback: ScheduledCallback
  cancelled: bool = False
  fired: bool = False

  def cancel(self) -> None:
    self.cancelled = True


class ManualScheduler:
  """Scheduler driven explicitly by tests through ``advance``."""

  def __init__(self, clock: FakeClock) -> None:
    self._clock = clock
    self.handles: list[ManualHandle] = []

  def call_later(self, delay: float, callback: ScheduledCallback) -> ManualHandle:
    handle = ManualHandle(due=self._clock.now + delay, callback=callback)
    self.handles.append(handle)
    return handle

  @property
  def pending(self) -> list[ManualHandle]:
    return [handle for handle in self.handles if not handle.cancelled and not handle.fired]

  async def advance(self, seconds: float) -> None:
    """Move time forward, firing due callbacks in order."""
    target = self._clock.now + seconds
    while True:
      due = [handle for handle in self.pending if handle.due <= target]
      if not due:
        break
      handle = min(due, key=lambda item: item.due)
      self._clock.now = max(self._clock.now, handle.due)
      handle.fired = True
      await handle.callback()
    self._clock.now = target


@dataclass
class FakeJobService:
  """In-memory stand-in for the remote job service."""

  next_job_id: str = "J1"
  next_record_id: str | None = "101"
  initial_status: JobStatus = JobStatus.SUBMITTED
  submit_error: SubmissionFailedError | None = None
  statuses: dict[str, list[StatusReport | Exception]] = field(default_factory=dict)
  page: JobPage | Exception = field(default_factory=lambda: JobPage(items=(), pagination=Pagination()))
  gate: asyncio.Event | None = None
  submissions: list[GenerationRequest] = field(default_factory=list)
  status_calls: list[str] = field(default_factory=list)
  list_calls: list[tuple[ListFilters, Pagination]] = field(default_factory=list)
  deleted: list[str] = field(default_factory=list)
  toggle_answer: bool | None | Exception = None
  toggled: list[tuple[str, str]] = field(default_factory=list)
  available_models: tuple[VideoModel, ...] = ()
  usage: UsageStats = field(default_factory=UsageStats)

  def queue_status(self, job_id: str, *answers: StatusReport | Exception) -> None:
    self.statuses.setdefault(job_id, []).extend(answers)

  async def submit(self, request: GenerationRequest) -> SubmitReceipt:
    self.submissions.append(request)
    if self.submit_error is not None:
      raise self.submit_error
    return SubmitReceipt(job_id=self.next_job_id, initial_status=self.initial_status, record_id=self.next_record_id)

  async def status(self, job_id: str) -> StatusReport:
    self.status_calls.append(job_id)
    answers = self.statuses.get(job_id) or [StatusReport(status=JobStatus.RUNNING)]
    # The last queued answer repeats once the others are used up.
    answer = answers.pop(0) if len(answers) > 1 else answers[0]
    if self.gate is not None:
      await self.gate.wait()
    if isinstance(answer, Exception):
      raise answer
    return answer

  async def list(self, filters: ListFilters, pagination: Pagination) -> JobPage:
    self.list_calls.append((filters, pagination))
    if isinstance(self.page, Exception):
      raise self.page
    return self.page

  async def delete(self, record_id: str) -> None:
    self.deleted.append(record_id)

  async def _toggle(self, flag: str, record_id: str) -> bool | None:
    self.toggled.append((flag, record_id))
    if self.gate is not None:
      await self.gate.wait()
    if isinstance(self.toggle_answer, Exception):
      raise self.toggle_answer
    return self.toggle_answer

  async def toggle_favorite(self, record_id: str) -> bool | None:
    return await self._toggle("favorite", record_id)

  async def toggle_public(self, record_id: str) -> bool | None:
    return await self._toggle("public", record_id)

  async def models(self) -> tuple[VideoModel, ...]:
    return self.available_models

  async def gallery(self, pagination: Pagination, model_id: str | None = None) -> JobPage:
    return await self.list(ListFilters(model_id=model_id), pagination)

  async def stats(self) -> UsageStats:
    return self.usage


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
  return ManualScheduler(clock)


@pytest.fixture
def service() -> FakeJobService:
  return FakeJobService()


@pytest.fixture
def notifier() -> CollectingNotifier:
  return CollectingNotifier()


@pytest.fixture
def store() -> JobListStore:
  return JobListStore()


@pytest.fixture
def tracker_settings() -> TrackerSettings:
  return TrackerSettings(poll_interval=5.0, poll_timeout=600.0, backoff_cap=60.0, transport_warning_threshold=3, completed_retention=86400.0, completed_max_entries=100)


@pytest.fixture
def tracker(service, store, notifier, scheduler, clock, tracker_settings) -> TaskTracker:
  return TaskTracker(service=service, store=store, notifier=notifier, scheduler=scheduler, settings=tracker_settings, monotonic=clock, wall=clock)
