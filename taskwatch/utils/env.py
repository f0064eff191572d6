"""Read taskwatch settings from a local .env file."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

_QUOTES = {'"', "'"}


def default_env_path() -> Path:
  """The .env file next to the package checkout."""

  return Path(__file__).resolve().parents[2] / ".env"


def _pairs(text: str) -> Iterator[tuple[str, str]]:
  for raw_line in text.splitlines():
    line = raw_line.strip()
    if line.startswith("export "):
      line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key or key.startswith("#"):
      continue
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
      value = value[1:-1]
    yield key, value


def read_env_file(path: Path, *, prefix: str = "") -> dict[str, str]:
  """Parse ``path`` into a mapping, keeping only keys starting with ``prefix``.

  A missing file reads as empty. Later lines win over earlier ones.
  """

  if not path.is_file():
    return {}
  return {key: value for key, value in _pairs(path.read_text(encoding="utf-8")) if key.startswith(prefix)}


def load_env_file(path: Path, *, prefix: str = "", override: bool = False) -> list[str]:
  """Copy matching keys from ``path`` into ``os.environ``; return the keys written.

  Values already present in the environment win unless ``override`` is set.
  """

  written = []
  for key, value in read_env_file(path, prefix=prefix).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    written.append(key)
  return written
