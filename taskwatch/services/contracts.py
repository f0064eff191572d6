"""Contract between the tracker and the remote job service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from taskwatch.jobs.models import Job, JobStatus, ListFilters, Pagination, StatusReport
from taskwatch.services.requests import GenerationRequest


@dataclass(frozen=True)
class SubmitReceipt:
  """What the service returns for an accepted job."""

  job_id: str
  initial_status: JobStatus = JobStatus.SUBMITTED
  record_id: str | None = None


@dataclass(frozen=True)
class JobPage:
  """One page of the authoritative job list."""

  items: tuple[Job, ...]
  pagination: Pagination


@dataclass(frozen=True)
class VideoModel:
  """A generation model offered by the service, with its supported options."""

  id: str
  name: str
  display_name: str | None = None
  provider: str | None = None
  description: str | None = None
  resolutions: tuple[str, ...] = ()
  durations: tuple[int, ...] = ()
  ratios: tuple[str, ...] = ()
  default_resolution: str | None = None
  default_duration: int | None = None
  default_ratio: str | None = None
  max_prompt_length: int | None = None

  @property
  def label(self) -> str:
    return self.display_name or self.name


@dataclass(frozen=True)
class UsageStats:
  """Per-user totals over every job the service knows about."""

  total: int = 0
  succeeded: int = 0
  failed: int = 0
  favorites: int = 0
  public: int = 0
  credits: float = 0.0
  today: int = 0


class RemoteJobService(Protocol):
  """Remote API accepting generation jobs and reporting their status."""

  async def submit(self, request: GenerationRequest) -> SubmitReceipt:
    """Create a job; raises SubmissionFailedError."""

  async def status(self, job_id: str) -> StatusReport:
    """Report a job's status; raises JobNotFoundError or RemoteTransportError."""

  async def list(self, filters: ListFilters, pagination: Pagination) -> JobPage:
    """Fetch one page of jobs; raises RefreshFailedError."""

  async def delete(self, record_id: str) -> None:
    """Delete a job record; raises RemoteServiceError."""

  async def toggle_favorite(self, record_id: str) -> bool | None:
    """Flip the favourite flag; returns the new value when the service reports it."""

  async def toggle_public(self, record_id: str) -> bool | None:
    """Flip gallery visibility; returns the new value when the service reports it."""

  async def models(self) -> tuple[VideoModel, ...]:
    """List the models jobs can be submitted with, in display order."""

  async def gallery(self, pagination: Pagination, model_id: str | None = None) -> JobPage:
    """Fetch one page of finished public jobs; raises RefreshFailedError."""

  async def stats(self) -> UsageStats:
    """Fetch the caller's usage totals."""
