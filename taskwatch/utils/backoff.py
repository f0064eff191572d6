"""Backoff helpers for retrying transient remote failures."""

from __future__ import annotations

import random


def next_backoff(current: float, *, cap: float, factor: float = 2.0, jitter: bool = False) -> float:
  """Grow a retry interval geometrically, never past ``cap``.

  With ``jitter`` the result is spread by +/-25% (still capped) so many
  clients retrying together do not hit the server in lockstep.
  """
  if current <= 0:
    raise ValueError("Backoff interval must be positive.")

  delay = min(current * factor, cap)
  if jitter:
    jitter_range = delay * 0.25
    delay = min(delay + random.uniform(-jitter_range, jitter_range), cap)

  return delay
