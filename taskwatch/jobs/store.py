"""Ordered list of displayed jobs shared by list refreshes and the poller."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any

from taskwatch.jobs.models import Job, Pagination

logger = logging.getLogger(__name__)

StoreListener = Callable[["JobListStore"], None]


class JobListStore:
  """Display state: an ordered tuple of immutable Job records plus pagination.

  Records are only ever swapped whole; ``items`` always returns a consistent
  snapshot.
  """

  def __init__(self, *, pagination: Pagination | None = None) -> None:
    self._items: tuple[Job, ...] = ()
    self._pagination = pagination or Pagination()
    self._version = 0
    self._listeners: list[StoreListener] = []

  @property
  def items(self) -> tuple[Job, ...]:
    return self._items

  @property
  def pagination(self) -> Pagination:
    return self._pagination

  @property
  def version(self) -> int:
    """Incremented on every effective change."""
    return self._version

  def get(self, job_id: str) -> Job | None:
    for job in self._items:
      if job.id == job_id:
        return job
    return None

  def _index_of(self, job_id: str) -> int | None:
    for index, job in enumerate(self._items):
      if job.id == job_id:
        return index
    return None

  def replace(self, jobs: Iterable[Job], pagination: Pagination | None = None) -> None:
    """Replace the whole list; duplicate ids keep their first occurrence."""

    seen: set[str] = set()
    unique: list[Job] = []
    for job in jobs:
      if job.id in seen:
        logger.debug("Dropping duplicate row for job %s", job.id)
        continue
      seen.add(job.id)
      unique.append(job)

    self._items = tuple(unique)
    if pagination is not None:
      self._pagination = pagination
    self._changed()

  def put(self, job: Job) -> Job | None:
    """Swap in ``job`` at the position of the row with the same id."""

    index = self._index_of(job.id)
    if index is None:
      return None
    if self._items[index] == job:
      return self._items[index]

    items = list(self._items)
    items[index] = job
    self._items = tuple(items)
    self._changed()
    return job

  def patch(self, job_id: str, **changes: Any) -> Job | None:
    """Apply field changes to one row in place; identical input is a no-op."""

    current = self.get(job_id)
    if current is None:
      return None
    return self.put(replace(current, **changes))

  def prepend(self, job: Job) -> bool:
    """Insert ``job`` at the front unless a row with its id exists."""

    if self._index_of(job.id) is not None:
      return False
    self._items = (job, *self._items)
    self._pagination = replace(self._pagination, total=self._pagination.total + 1)
    self._changed()
    return True

  def remove(self, job_id: str) -> bool:
    index = self._index_of(job_id)
    if index is None:
      return False
    self._items = self._items[:index] + self._items[index + 1 :]
    self._pagination = replace(self._pagination, total=max(0, self._pagination.total - 1))
    self._changed()
    return True

  def subscribe(self, listener: StoreListener) -> Callable[[], None]:
    """Register a change listener; returns a callable that unregisters it."""

    self._listeners.append(listener)

    def unsubscribe() -> None:
      if listener in self._listeners:
        self._listeners.remove(listener)

    return unsubscribe

  def _changed(self) -> None:
    self._version += 1
    for listener in list(self._listeners):
      try:
        listener(self)
      except Exception:  # noqa: BLE001
        logger.error("Job list listener %r failed", listener, exc_info=True)
