from __future__ import annotations

import httpx

from taskwatch.config import Settings
from taskwatch.jobs.scheduler import AsyncioScheduler, Scheduler
from taskwatch.jobs.store import JobListStore
from taskwatch.jobs.tracker import TaskTracker
from taskwatch.notifications.contracts import Notifier
from taskwatch.notifications.service import LoggingNotifier
from taskwatch.services.contracts import RemoteJobService
from taskwatch.services.http import HttpJobService


def build_http_client(settings: Settings) -> httpx.AsyncClient:
  """Build the httpx client pointed at the configured API."""
  if not settings.api_base_url:
    raise RuntimeError("TASKWATCH_API_BASE_URL must be set to reach the job service.")
  return httpx.AsyncClient(base_url=settings.api_base_url, timeout=settings.http_timeout_seconds)


def build_service(settings: Settings, *, client: httpx.AsyncClient | None = None) -> HttpJobService:
  return HttpJobService(client or build_http_client(settings), prefix=settings.api_prefix, token=settings.api_token, timeout=settings.http_timeout_seconds)


def build_tracker(
  settings: Settings,
  *,
  client: httpx.AsyncClient | None = None,
  service: RemoteJobService | None = None,
  notifier: Notifier | None = None,
  store: JobListStore | None = None,
  scheduler: Scheduler | None = None,
) -> TaskTracker:
  """Wire a TaskTracker from settings; collaborators can be injected."""
  return TaskTracker(
    service=service or build_service(settings, client=client),
    store=store or JobListStore(),
    notifier=notifier or LoggingNotifier(),
    scheduler=scheduler or AsyncioScheduler(),
    settings=settings.tracker_settings(),
  )
