"""Cancellable delayed callbacks on the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

ScheduledCallback = Callable[[], Awaitable[None]]


class ScheduledHandle(Protocol):
  """Handle of one scheduled callback."""

  @property
  def cancelled(self) -> bool:
    """True once ``cancel`` was called."""

  def cancel(self) -> None:
    """Prevent the callback from starting; a started callback is left to finish."""


class Scheduler(Protocol):
  """Runs a coroutine function after a delay."""

  def call_later(self, delay: float, callback: ScheduledCallback) -> ScheduledHandle:
    """Schedule ``callback`` to run after ``delay`` seconds."""


class _AsyncioHandle:
  def __init__(self, on_cancel: Callable[[_AsyncioHandle], None]) -> None:
    self._cancelled = False
    self._timer: asyncio.TimerHandle | None = None
    self._on_cancel = on_cancel

  @property
  def cancelled(self) -> bool:
    return self._cancelled

  def cancel(self) -> None:
    if self._cancelled:
      return
    self._cancelled = True
    if self._timer is not None:
      self._timer.cancel()
    self._on_cancel(self)


class AsyncioScheduler:
  """Scheduler backed by ``loop.call_later``; each firing runs as its own task."""

  def __init__(self) -> None:
    self._pending: set[_AsyncioHandle] = set()
    self._tasks: set[asyncio.Task[None]] = set()

  def call_later(self, delay: float, callback: ScheduledCallback) -> ScheduledHandle:
    loop = asyncio.get_running_loop()
    handle = _AsyncioHandle(self._pending.discard)
    handle._timer = loop.call_later(max(delay, 0.0), self._fire, loop, handle, callback)
    self._pending.add(handle)
    return handle

  def _fire(self, loop: asyncio.AbstractEventLoop, handle: _AsyncioHandle, callback: ScheduledCallback) -> None:
    self._pending.discard(handle)
    if handle.cancelled:
      return
    task = loop.create_task(self._run(callback))
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _run(self, callback: ScheduledCallback) -> None:
    try:
      await callback()
    except asyncio.CancelledError:
      raise
    except Exception:  # noqa: BLE001
      logger.error("Scheduled callback %r failed", callback, exc_info=True)

  @property
  def pending_count(self) -> int:
    return len(self._pending)

  async def aclose(self) -> None:
    """Cancel pending timers and running callbacks, then wait for them."""

    for handle in list(self._pending):
      handle.cancel()
    self._pending.clear()

    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)
