"""Pure merge rules reconciling poll results and list refreshes.

Every function here takes immutable snapshots and returns new ones; none of
them touches the tracker, the store or the network.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from taskwatch.jobs.completed import CompletedEntry
from taskwatch.jobs.models import Job, JobStatus, StatusReport, normalize_job


@dataclass(frozen=True)
class ListMerge:
  """Outcome of reconciling a remote list against local tracking state."""

  jobs: tuple[Job, ...]
  tracked_updates: Mapping[str, Job] = field(default_factory=dict)
  newly_terminal: tuple[Job, ...] = ()


def merge_status_report(current: Job, report: StatusReport) -> Job:
  """Fold one poll answer into the last known job without moving backwards."""

  if current.is_terminal:
    return current

  # An older answer overtaken by a newer one.
  if report.status.rank < current.status.rank:
    return current

  merged = normalize_job(
    job_id=current.id,
    status=report.status,
    progress=report.progress if report.progress is not None else current.progress,
    result_refs=report.result_refs,
    error_info=report.error_info,
    client_handle=current.client_handle,
    submitted_at=current.submitted_at,
    record_id=current.record_id,
    title=current.title,
    metadata=current.metadata,
  )
  if not merged.is_terminal and merged.progress < current.progress:
    merged = replace(merged, progress=current.progress)
  return current if merged == current else merged


def apply_completed(remote: Job, entry: CompletedEntry) -> Job:
  """Lay the frozen terminal fields of ``entry`` over a remote record."""

  progress = 100 if entry.status is JobStatus.SUCCEEDED else remote.progress
  return replace(remote, status=entry.status, progress=progress, result_refs=entry.result_refs, error_info=entry.error_info)


def _carry_local(remote: Job, local: Job) -> Job:
  """Remote descriptive fields with the local lifecycle fields."""

  return replace(
    remote,
    client_handle=local.client_handle,
    status=local.status,
    progress=local.progress,
    result_refs=local.result_refs,
    error_info=local.error_info,
    submitted_at=local.submitted_at or remote.submitted_at,
    record_id=remote.record_id or local.record_id,
  )


def _adopt_remote(remote: Job, local: Job) -> Job:
  """Remote record, keeping the local handle and never lowering in-flight progress.

  Only called when the remote status ranks at or above the local one.
  """

  progress = remote.progress
  if not remote.is_terminal:
    progress = max(progress, local.progress)
  return replace(
    remote,
    client_handle=local.client_handle,
    progress=progress,
    submitted_at=local.submitted_at or remote.submitted_at,
    record_id=remote.record_id or local.record_id,
  )


def reconcile_list(remote_jobs: Iterable[Job], *, tracked: Mapping[str, Job], completed: Mapping[str, CompletedEntry]) -> ListMerge:
  """Decide what to display for each remote record.

  1. Completed ids keep their frozen terminal fields.
  2. Tracked ids keep the local lifecycle fields when they are strictly more
     advanced than the remote ones; otherwise the remote record is adopted
     and becomes the new local snapshot.
  3. Everything else is shown as the remote reports it.
  """

  merged: list[Job] = []
  tracked_updates: dict[str, Job] = {}
  newly_terminal: list[Job] = []

  for remote in remote_jobs:
    entry = completed.get(remote.id)
    if entry is not None:
      merged.append(apply_completed(remote, entry))
      continue

    local = tracked.get(remote.id)
    if local is None:
      merged.append(remote)
      continue

    if local.status.rank > remote.status.rank:
      job = _carry_local(remote, local)
    else:
      job = _adopt_remote(remote, local)
      if job.is_terminal:
        newly_terminal.append(job)

    tracked_updates[remote.id] = job
    merged.append(job)

  return ListMerge(jobs=tuple(merged), tracked_updates=tracked_updates, newly_terminal=tuple(newly_terminal))
