"""
Injectable time source for the streaming clients.

Every delay in the extensions (reconnect backoff, connect timeout, monitor
timeout, grace cleanup, periodic sweep, status polling) goes through a Clock
so tests can drive timing deterministically without real sleeping.
"""

import asyncio
import time
from typing import Callable, Protocol


class TimerHandle(Protocol):
  """A scheduled callback that can be cancelled."""

  def cancel(self) -> None: ...

  def cancelled(self) -> bool: ...


class Clock(Protocol):
  """Time source used by the SSE and operation clients."""

  def time(self) -> float:
    """Current monotonic time in seconds."""
    ...

  async def sleep(self, delay: float) -> None:
    """Suspend the calling task for ``delay`` seconds."""
    ...

  def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Run ``callback`` once after ``delay`` seconds."""
    ...


class AsyncioClock:
  """Clock backed by the running asyncio event loop."""

  def time(self) -> float:
    return time.monotonic()

  async def sleep(self, delay: float) -> None:
    await asyncio.sleep(delay)

  def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


default_clock = AsyncioClock()
