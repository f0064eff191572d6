"""Identifier utilities."""

from __future__ import annotations

import secrets
import string

_HANDLE_ALPHABET = string.ascii_letters + string.digits


def generate_client_handle(size: int = 16) -> str:
  """Return a local correlation key for a job that has not been accepted yet."""
  return "h_" + "".join(secrets.choice(_HANDLE_ALPHABET) for _ in range(size))
