"""HTTP implementation of the remote job service (video generation REST API)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
import msgspec

from taskwatch.core.exceptions import JobNotFoundError, RefreshFailedError, RemoteServiceError, RemoteTransportError, SubmissionFailedError, SubmissionFailureReason
from taskwatch.jobs.models import Job, JobStatus, ListFilters, Pagination, StatusReport, normalize_job
from taskwatch.services.contracts import JobPage, SubmitReceipt, UsageStats, VideoModel
from taskwatch.services.requests import GenerationRequest

logger = logging.getLogger(__name__)


class _Envelope(msgspec.Struct):
  """Response wrapper used by every endpoint of the API."""

  success: bool = True
  data: Any = None
  message: str | None = None


class _SubmitData(msgspec.Struct):
  task_id: str | None = msgspec.field(default=None, name="taskId")
  generation_id: int | str | None = msgspec.field(default=None, name="generationId")
  status: str | None = None


class _GenerationRecord(msgspec.Struct):
  id: int | str | None = None
  task_id: str | None = None
  status: str = "submitted"
  progress: int | float | None = None
  video_url: str | None = None
  local_path: str | None = None
  thumbnail_path: str | None = None
  preview_gif_path: str | None = None
  error_message: str | None = None
  prompt: str | None = None
  resolution: str | None = None
  duration: int | float | None = None
  model_id: int | str | None = None
  is_favorite: bool | int | None = None
  is_public: bool | int | None = None
  credits_consumed: int | float | None = None
  created_at: str | None = None
  updated_at: str | None = None
  completed_at: str | None = None
  # Only present on gallery records.
  model_name: str | None = None
  provider: str | None = None
  username: str | None = None


class _PaginationData(msgspec.Struct):
  total: int = 0
  page: int = 1
  limit: int = 20


class _HistoryData(msgspec.Struct):
  data: list[_GenerationRecord] = msgspec.field(default_factory=list)
  pagination: _PaginationData = msgspec.field(default_factory=_PaginationData)


class _ModelRecord(msgspec.Struct):
  id: int | str
  name: str | None = None
  display_name: str | None = None
  description: str | None = None
  provider: str | None = None
  resolutions_supported: list[str] | None = None
  durations_supported: list[int] | None = None
  ratios_supported: list[str] | None = None
  default_resolution: str | None = None
  default_duration: int | None = None
  default_ratio: str | None = None
  max_prompt_length: int | None = None
  is_active: bool | int | None = None


class _StatsData(msgspec.Struct):
  total_count: int | None = None
  success_count: int | None = None
  failed_count: int | None = None
  favorite_count: int | None = None
  public_count: int | None = None
  total_credits: float | None = None
  today_count: int | None = None


# Fields of a generation record that map onto Job attributes rather than metadata.
_JOB_FIELDS = frozenset({"id", "task_id", "status", "progress", "video_url", "local_path", "error_message", "prompt"})


def _parse_timestamp(raw: str | None) -> float:
  if not raw:
    return 0.0
  try:
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
  except ValueError:
    return 0.0


def _record_to_job(record: _GenerationRecord) -> Job | None:
  """Convert a wire record into a Job; records without any id are unusable."""

  job_id = record.task_id or (str(record.id) if record.id is not None else None)
  if not job_id:
    return None

  metadata = {key: value for key, value in msgspec.structs.asdict(record).items() if key not in _JOB_FIELDS and value is not None}
  return normalize_job(
    job_id=job_id,
    status=record.status,
    progress=record.progress,
    result_refs=(record.video_url, record.local_path),
    error_info=record.error_message,
    submitted_at=_parse_timestamp(record.created_at),
    record_id=str(record.id) if record.id is not None else None,
    title=record.prompt,
    metadata=metadata,
  )


def _model_from_record(record: _ModelRecord) -> VideoModel:
  return VideoModel(
    id=str(record.id),
    name=record.name or str(record.id),
    display_name=record.display_name,
    provider=record.provider,
    description=record.description,
    resolutions=tuple(record.resolutions_supported or ()),
    durations=tuple(record.durations_supported or ()),
    ratios=tuple(record.ratios_supported or ()),
    default_resolution=record.default_resolution,
    default_duration=record.default_duration,
    default_ratio=record.default_ratio,
    max_prompt_length=record.max_prompt_length,
  )


class HttpJobService:
  """Talks to the generation REST API through an ``httpx.AsyncClient``."""

  def __init__(self, client: httpx.AsyncClient, *, prefix: str = "/video", token: str | None = None, timeout: float = 15.0) -> None:
    self._client = client
    self._prefix = prefix.rstrip("/")
    self._token = token
    self._timeout = timeout

  def _headers(self) -> dict[str, str]:
    headers = {"accept": "application/json"}
    if self._token:
      headers["authorization"] = f"Bearer {self._token}"
    return headers

  async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
    url = f"{self._prefix}{path}"
    return await self._client.request(method, url, headers=self._headers(), timeout=self._timeout, **kwargs)

  @staticmethod
  def _envelope(response: httpx.Response) -> _Envelope:
    return msgspec.json.decode(response.content, type=_Envelope)

  @staticmethod
  def _message(response: httpx.Response, default: str) -> str:
    """Best-effort extraction of the server's error message."""
    try:
      envelope = msgspec.json.decode(response.content, type=_Envelope)
    except msgspec.DecodeError:
      return default
    return envelope.message or default

  async def submit(self, request: GenerationRequest) -> SubmitReceipt:
    try:
      response = await self._send("POST", "/generate", json=request.to_payload())
    except httpx.RequestError as exc:
      logger.warning("Job submission transport failure: %s", exc)
      raise SubmissionFailedError(SubmissionFailureReason.TRANSPORT, f"Could not reach the job service: {exc}") from exc

    if response.status_code == 402:
      raise SubmissionFailedError(SubmissionFailureReason.QUOTA, self._message(response, "Insufficient credits."))
    if response.status_code in (400, 404, 422):
      raise SubmissionFailedError(SubmissionFailureReason.VALIDATION, self._message(response, "Invalid generation request."))
    if response.is_error:
      logger.error("Job submission returned %s: %s", response.status_code, response.text[:500])
      raise SubmissionFailedError(SubmissionFailureReason.REJECTED, self._message(response, f"Job service returned {response.status_code}."))

    try:
      envelope = self._envelope(response)
      if not envelope.success or envelope.data is None:
        raise SubmissionFailedError(SubmissionFailureReason.REJECTED, envelope.message or "Job service rejected the request.")
      data = msgspec.convert(envelope.data, type=_SubmitData, strict=False)
    except msgspec.DecodeError as exc:
      raise SubmissionFailedError(SubmissionFailureReason.REJECTED, f"Unreadable submission response: {exc}") from exc

    if not data.task_id:
      raise SubmissionFailedError(SubmissionFailureReason.REJECTED, "Job service accepted the request without a task id.")

    initial_status = JobStatus.SUBMITTED
    if data.status:
      try:
        initial_status = JobStatus.parse(data.status)
      except ValueError:
        logger.warning("Unknown initial status %r for job %s; assuming submitted", data.status, data.task_id)

    record_id = str(data.generation_id) if data.generation_id is not None else None
    logger.info("Job %s accepted (record=%s, status=%s)", data.task_id, record_id, initial_status.value)
    return SubmitReceipt(job_id=data.task_id, initial_status=initial_status, record_id=record_id)

  async def status(self, job_id: str) -> StatusReport:
    try:
      response = await self._send("GET", f"/task/{job_id}")
    except httpx.RequestError as exc:
      raise RemoteTransportError(f"Status request for job {job_id} failed: {exc}") from exc

    if response.status_code in (403, 404):
      raise JobNotFoundError(job_id)
    if response.is_error:
      raise RemoteTransportError(f"Status request for job {job_id} returned {response.status_code}.")

    try:
      envelope = self._envelope(response)
      if not envelope.success or envelope.data is None:
        raise RemoteTransportError(f"Status request for job {job_id} unsuccessful: {envelope.message or 'no data'}")
      record = msgspec.convert(envelope.data, type=_GenerationRecord, strict=False)
      status = JobStatus.parse(record.status)
    except (msgspec.DecodeError, ValueError) as exc:
      raise RemoteTransportError(f"Unreadable status for job {job_id}: {exc}") from exc

    refs = tuple(ref for ref in (record.video_url, record.local_path) if ref)
    progress = int(record.progress) if record.progress is not None else None
    return StatusReport(status=status, progress=progress, result_refs=refs, error_info=record.error_message)

  async def _data(self, method: str, path: str, *, what: str, missing: str | None = None, **kwargs: Any) -> Any:
    """Send a request and return the envelope's ``data``.

    With ``missing`` set, 403 and 404 raise ``JobNotFoundError`` for that id;
    every other failure raises ``RemoteServiceError``.
    """
    try:
      response = await self._send(method, path, **kwargs)
    except httpx.RequestError as exc:
      raise RemoteTransportError(f"{what} failed: {exc}") from exc

    if missing is not None and response.status_code in (403, 404):
      raise JobNotFoundError(missing)
    if response.is_error:
      raise RemoteServiceError(self._message(response, f"{what} returned {response.status_code}."))

    try:
      envelope = self._envelope(response)
    except msgspec.DecodeError as exc:
      raise RemoteServiceError(f"Unreadable response to {what}: {exc}") from exc
    if not envelope.success:
      raise RemoteServiceError(envelope.message or f"{what} was not successful.")
    return envelope.data

  async def list(self, filters: ListFilters, pagination: Pagination) -> JobPage:
    params = {"page": str(pagination.page), "limit": str(pagination.limit), **filters.as_params()}
    return await self._page("/history", params, what="Job list")

  async def gallery(self, pagination: Pagination, model_id: str | None = None) -> JobPage:
    params = {"page": str(pagination.page), "limit": str(pagination.limit)}
    if model_id is not None:
      params["model_id"] = str(model_id)
    return await self._page("/gallery", params, what="Gallery")

  async def _page(self, path: str, params: dict[str, str], *, what: str) -> JobPage:
    try:
      response = await self._send("GET", path, params=params)
      response.raise_for_status()
      envelope = self._envelope(response)
      if not envelope.success or envelope.data is None:
        raise RefreshFailedError(envelope.message or f"{what} request was not successful.")
      history = msgspec.convert(envelope.data, type=_HistoryData, strict=False)
    except httpx.HTTPStatusError as exc:
      raise RefreshFailedError(f"{what} returned {exc.response.status_code}.") from exc
    except httpx.RequestError as exc:
      raise RefreshFailedError(f"{what} request failed: {exc}") from exc
    except msgspec.DecodeError as exc:
      raise RefreshFailedError(f"Unreadable {what.lower()}: {exc}") from exc

    jobs: list[Job] = []
    for record in history.data:
      try:
        job = _record_to_job(record)
      except ValueError as exc:
        logger.warning("Skipping job record %s: %s", record.task_id or record.id, exc)
        continue
      if job is None:
        logger.warning("Skipping job record without id or task_id")
        continue
      jobs.append(job)

    page = Pagination(total=history.pagination.total, page=history.pagination.page, limit=history.pagination.limit)
    return JobPage(items=tuple(jobs), pagination=page)

  async def delete(self, record_id: str) -> None:
    try:
      response = await self._send("DELETE", f"/generation/{record_id}")
    except httpx.RequestError as exc:
      raise RemoteServiceError(f"Delete of record {record_id} failed: {exc}") from exc

    if response.status_code == 404:
      logger.info("Record %s already gone on the server", record_id)
      return
    if response.is_error:
      raise RemoteServiceError(self._message(response, f"Delete of record {record_id} returned {response.status_code}."))

  async def _toggle(self, record_id: str, flag: str) -> bool | None:
    data = await self._data("POST", f"/generation/{record_id}/{flag}", what=f"Toggling {flag} on record {record_id}", missing=record_id)
    value = data.get(f"is_{flag}") if isinstance(data, dict) else None
    if value is None:
      logger.debug("Service did not report the new %s flag of record %s", flag, record_id)
      return None
    return bool(value)

  async def toggle_favorite(self, record_id: str) -> bool | None:
    return await self._toggle(record_id, "favorite")

  async def toggle_public(self, record_id: str) -> bool | None:
    return await self._toggle(record_id, "public")

  async def models(self) -> tuple[VideoModel, ...]:
    data = await self._data("GET", "/models", what="Model list")
    try:
      records = msgspec.convert(data or [], type=list[_ModelRecord], strict=False)
    except msgspec.ValidationError as exc:
      raise RemoteServiceError(f"Unreadable model list: {exc}") from exc
    # The service only lists active models, but admin views may not filter.
    return tuple(_model_from_record(record) for record in records if record.is_active is None or record.is_active)

  async def stats(self) -> UsageStats:
    data = await self._data("GET", "/stats", what="Usage stats")
    try:
      raw = msgspec.convert(data or {}, type=_StatsData, strict=False)
    except msgspec.ValidationError as exc:
      raise RemoteServiceError(f"Unreadable usage stats: {exc}") from exc
    # SUM() over no rows comes back as null.
    return UsageStats(
      total=raw.total_count or 0,
      succeeded=raw.success_count or 0,
      failed=raw.failed_count or 0,
      favorites=raw.favorite_count or 0,
      public=raw.public_count or 0,
      credits=raw.total_credits or 0.0,
      today=raw.today_count or 0,
    )
