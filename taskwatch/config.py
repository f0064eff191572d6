"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from taskwatch.jobs.tracker import TrackerSettings
from taskwatch.utils.env import default_env_path, load_env_file

ENV_PREFIX = "TASKWATCH_"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the job tracker and its HTTP client."""

  api_base_url: str | None
  api_token: str | None
  api_prefix: str
  http_timeout_seconds: float
  poll_interval_seconds: float
  poll_timeout_seconds: float
  poll_backoff_cap_seconds: float
  transport_warning_threshold: int
  completed_retention_seconds: float
  completed_max_entries: int
  page_size: int
  debug: bool
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int

  def tracker_settings(self) -> TrackerSettings:
    """Return the polling/retention knobs consumed by TaskTracker."""

    return TrackerSettings(
      poll_interval=self.poll_interval_seconds,
      poll_timeout=self.poll_timeout_seconds,
      backoff_cap=self.poll_backoff_cap_seconds,
      transport_warning_threshold=self.transport_warning_threshold,
      completed_retention=self.completed_retention_seconds,
      completed_max_entries=self.completed_max_entries,
      page_size=self.page_size,
    )


def _env(name: str) -> str | None:
  return os.getenv(f"{ENV_PREFIX}{name}")


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_float(name: str, default: str) -> float:
  raw = _env(name) or default
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{ENV_PREFIX}{name} must be a number.") from exc
  if value <= 0:
    raise ValueError(f"{ENV_PREFIX}{name} must be a positive number.")
  return value


def _int(name: str, default: str, *, minimum: int) -> int:
  raw = _env(name) or default
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{ENV_PREFIX}{name} must be an integer.") from exc
  if value < minimum:
    raise ValueError(f"{ENV_PREFIX}{name} must be at least {minimum}.")
  return value


def _normalize_prefix(raw: str | None) -> str:
  prefix = (raw or "/video").strip().rstrip("/")
  if prefix and not prefix.startswith("/"):
    prefix = "/" + prefix
  return prefix


def load_settings() -> Settings:
  """Build settings from the current environment without caching."""

  poll_interval = _positive_float("POLL_INTERVAL_SECONDS", "5")
  poll_timeout = _positive_float("POLL_TIMEOUT_SECONDS", "600")
  backoff_cap = _positive_float("POLL_BACKOFF_CAP_SECONDS", "60")

  # A cap below the base interval would make backoff shrink the interval.
  if backoff_cap < poll_interval:
    raise ValueError(f"{ENV_PREFIX}POLL_BACKOFF_CAP_SECONDS must not be lower than {ENV_PREFIX}POLL_INTERVAL_SECONDS.")

  return Settings(
    api_base_url=_optional_str(_env("API_BASE_URL")),
    api_token=_optional_str(_env("API_TOKEN")),
    api_prefix=_normalize_prefix(_env("API_PREFIX")),
    http_timeout_seconds=_positive_float("HTTP_TIMEOUT_SECONDS", "15"),
    poll_interval_seconds=poll_interval,
    poll_timeout_seconds=poll_timeout,
    poll_backoff_cap_seconds=backoff_cap,
    transport_warning_threshold=_int("TRANSPORT_WARNING_THRESHOLD", "3", minimum=1),
    completed_retention_seconds=_positive_float("COMPLETED_RETENTION_SECONDS", "86400"),
    completed_max_entries=_int("COMPLETED_MAX_ENTRIES", "500", minimum=1),
    page_size=_int("PAGE_SIZE", "20", minimum=1),
    debug=_parse_bool(_env("DEBUG")),
    log_dir=_optional_str(_env("LOG_DIR")),
    log_max_bytes=_int("LOG_MAX_BYTES", "5242880", minimum=1),
    log_backup_count=_int("LOG_BACKUP_COUNT", "5", minimum=0),
  )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  load_env_file(default_env_path(), prefix=ENV_PREFIX)
  return load_settings()
