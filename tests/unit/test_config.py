from __future__ import annotations

import os
from pathlib import Path

import pytest

from taskwatch.config import ENV_PREFIX, load_settings
from taskwatch.utils.backoff import next_backoff
from taskwatch.utils.env import load_env_file, read_env_file


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
  # Private copy so values written by the .env loader do not leak into other tests.
  monkeypatch.setattr(os, "environ", {key: value for key, value in os.environ.items() if not key.startswith(ENV_PREFIX)})


def test_defaults_match_polling_contract() -> None:
  settings = load_settings()

  assert settings.api_base_url is None
  assert settings.api_prefix == "/video"
  assert settings.poll_interval_seconds == 5.0
  assert settings.poll_timeout_seconds == 600.0
  assert settings.completed_retention_seconds == 86400.0
  assert settings.transport_warning_threshold == 3
  assert settings.debug is False


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("TASKWATCH_API_BASE_URL", " https://api.example.com ")
  monkeypatch.setenv("TASKWATCH_API_PREFIX", "api/video/")
  monkeypatch.setenv("TASKWATCH_POLL_INTERVAL_SECONDS", "2.5")
  monkeypatch.setenv("TASKWATCH_COMPLETED_MAX_ENTRIES", "10")
  monkeypatch.setenv("TASKWATCH_DEBUG", "yes")

  settings = load_settings()
  tracker_settings = settings.tracker_settings()

  assert settings.api_base_url == "https://api.example.com"
  assert settings.api_prefix == "/api/video"
  assert settings.debug is True
  assert tracker_settings.poll_interval == 2.5
  assert tracker_settings.completed_max_entries == 10
  assert tracker_settings.backoff_cap == 60.0


@pytest.mark.parametrize(
  ("key", "value"),
  [
    ("TASKWATCH_POLL_INTERVAL_SECONDS", "fast"),
    ("TASKWATCH_POLL_TIMEOUT_SECONDS", "-1"),
    ("TASKWATCH_PAGE_SIZE", "0"),
    ("TASKWATCH_POLL_BACKOFF_CAP_SECONDS", "1"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
  monkeypatch.setenv(key, value)

  with pytest.raises(ValueError):
    load_settings()


def test_env_file_loader_respects_existing_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text('# local\nexport TASKWATCH_API_TOKEN="secret"\nTASKWATCH_PAGE_SIZE=50\nnot a pair\n', encoding="utf-8")
  monkeypatch.setenv("TASKWATCH_PAGE_SIZE", "30")

  written = load_env_file(env_file, prefix=ENV_PREFIX)
  settings = load_settings()

  assert written == ["TASKWATCH_API_TOKEN"]
  assert settings.api_token == "secret"
  assert settings.page_size == 30


def test_env_file_loader_only_takes_prefixed_keys(tmp_path: Path) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("OTHER_APP_SECRET_KEY=hunter2\n#TASKWATCH_DEBUG=1\nTASKWATCH_DEBUG='on'\n", encoding="utf-8")

  assert read_env_file(env_file, prefix=ENV_PREFIX) == {"TASKWATCH_DEBUG": "on"}
  assert load_env_file(env_file, prefix=ENV_PREFIX) == ["TASKWATCH_DEBUG"]
  assert "OTHER_APP_SECRET_KEY" not in os.environ
  assert load_settings().debug is True


def test_env_file_override_replaces_existing_value(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("TASKWATCH_PAGE_SIZE=50\n", encoding="utf-8")
  monkeypatch.setenv("TASKWATCH_PAGE_SIZE", "30")

  load_env_file(env_file, prefix=ENV_PREFIX, override=True)

  assert load_settings().page_size == 50


def test_env_file_missing_is_ignored(tmp_path: Path) -> None:
  assert load_env_file(tmp_path / "absent.env") == []


def test_backoff_doubles_up_to_cap() -> None:
  assert next_backoff(5.0, cap=60.0) == 10.0
  assert next_backoff(40.0, cap=60.0) == 60.0
  assert 45.0 <= next_backoff(30.0, cap=100.0, jitter=True) <= 75.0

  with pytest.raises(ValueError):
    next_backoff(0, cap=10.0)
