from __future__ import annotations

import asyncio
import logging

import pytest

from taskwatch.jobs.scheduler import AsyncioScheduler


@pytest.mark.anyio
async def test_callback_runs_after_delay() -> None:
  scheduler = AsyncioScheduler()
  fired = asyncio.Event()

  async def callback() -> None:
    fired.set()

  scheduler.call_later(0.01, callback)
  assert scheduler.pending_count == 1

  await asyncio.wait_for(fired.wait(), timeout=1.0)
  assert scheduler.pending_count == 0
  await scheduler.aclose()


@pytest.mark.anyio
async def test_cancelled_callback_never_runs() -> None:
  scheduler = AsyncioScheduler()
  calls: list[str] = []

  async def callback() -> None:
    calls.append("ran")

  handle = scheduler.call_later(0.01, callback)
  handle.cancel()
  handle.cancel()
  await asyncio.sleep(0.05)

  assert handle.cancelled
  assert calls == []
  assert scheduler.pending_count == 0


@pytest.mark.anyio
async def test_failing_callback_is_logged(caplog: pytest.LogCaptureFixture) -> None:
  """A broken callback must not take the event loop down with it."""
  scheduler = AsyncioScheduler()
  done = asyncio.Event()

  async def callback() -> None:
    done.set()
    raise RuntimeError("boom")

  with caplog.at_level(logging.ERROR, logger="taskwatch.jobs.scheduler"):
    scheduler.call_later(0, callback)
    await asyncio.wait_for(done.wait(), timeout=1.0)
    await asyncio.sleep(0.01)

  assert "Scheduled callback" in caplog.text
  await scheduler.aclose()


@pytest.mark.anyio
async def test_aclose_cancels_timers_and_running_callbacks() -> None:
  scheduler = AsyncioScheduler()
  started = asyncio.Event()
  cancelled: list[bool] = []

  async def slow() -> None:
    started.set()
    try:
      await asyncio.sleep(10)
    except asyncio.CancelledError:
      cancelled.append(True)
      raise

  async def never() -> None:
    raise AssertionError("pending timer fired after aclose")

  scheduler.call_later(0, slow)
  scheduler.call_later(5, never)
  await asyncio.wait_for(started.wait(), timeout=1.0)

  await scheduler.aclose()

  assert cancelled == [True]
  assert scheduler.pending_count == 0
