"""
Shared fixtures for the client extension tests.

Provides a deterministic clock and a scripted stream transport so reconnect,
timeout and cleanup behaviour can be exercised without real sleeping or
network access.
"""

import asyncio
import json
from typing import Any, Callable, List, Optional

import httpx
import pytest

from robosystems_client.exceptions import SSEConnectionError
from robosystems_client.extensions.config import SDKExtensionsConfig
from robosystems_client.extensions.events import RawEvent
from robosystems_client.extensions.extensions import RoboSystemsExtensions
from robosystems_client.extensions.transport import (
  EventSourceHandle,
  ReadyState,
  StreamTransport,
)


async def flush(times: int = 50) -> None:
  """Let every runnable task on the loop make progress."""
  for _ in range(times):
    await asyncio.sleep(0)


# ============================================================================
# Clock
# ============================================================================


class FakeTimer:
  def __init__(self, clock: "FakeClock", when: float, seq: int, callback: Callable[[], None]):
    self._clock = clock
    self.when = when
    self.seq = seq
    self.callback = callback
    self._cancelled = False

  def cancel(self) -> None:
    self._cancelled = True
    if self in self._clock.timers:
      self._clock.timers.remove(self)

  def cancelled(self) -> bool:
    return self._cancelled


class FakeClock:
  """Clock whose time only moves when a test calls ``advance``."""

  def __init__(self):
    self.now = 0.0
    self.timers: List[FakeTimer] = []
    self.sleeps: List[float] = []
    self._seq = 0

  def time(self) -> float:
    return self.now

  def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
    self._seq += 1
    timer = FakeTimer(self, self.now + delay, self._seq, callback)
    self.timers.append(timer)
    return timer

  async def sleep(self, delay: float) -> None:
    self.sleeps.append(delay)
    future = asyncio.get_running_loop().create_future()

    def wake() -> None:
      if not future.done():
        future.set_result(None)

    timer = self.call_later(delay, wake)
    try:
      await future
    finally:
      timer.cancel()

  def pending(self) -> int:
    return len(self.timers)

  async def advance(self, seconds: float) -> None:
    """Move time forward, firing due timers in order and letting tasks run."""
    target = self.now + seconds
    while True:
      await flush()
      due = [t for t in self.timers if t.when <= target]
      if not due:
        break
      timer = min(due, key=lambda t: (t.when, t.seq))
      self.timers.remove(timer)
      self.now = timer.when
      timer.callback()
    self.now = target
    await flush()


# ============================================================================
# Stream transport
# ============================================================================


class FakeEventSource(EventSourceHandle):
  """Scripted stream: the test decides when it opens, what it sends and when it drops."""

  def __init__(self, url, params, headers):
    super().__init__(url, params, headers)
    self._gate = asyncio.Event()
    self._queue: asyncio.Queue = asyncio.Queue()
    self._open_error: Optional[BaseException] = None
    self.exited = False

  def accept(self) -> None:
    self._gate.set()

  def refuse(self, error: Optional[BaseException] = None) -> None:
    self._open_error = error or SSEConnectionError("Connection refused")
    self._gate.set()

  async def __aenter__(self) -> "FakeEventSource":
    await self._gate.wait()
    if self._open_error is not None:
      self.ready_state = ReadyState.CLOSED
      raise self._open_error
    self.ready_state = ReadyState.OPEN
    return self

  async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
    self.ready_state = ReadyState.CLOSED
    self.exited = True

  def send(self, event: str, data: Any = None, id: Optional[int] = None) -> None:
    raw = data if isinstance(data, str) else json.dumps(data or {})
    self._queue.put_nowait(
      RawEvent(event=event, data=raw, id=str(id) if id is not None else None)
    )

  def drop(self, error: Optional[BaseException] = None) -> None:
    """Fail the stream as a network error would."""
    self._queue.put_nowait(error or ConnectionResetError("connection reset by peer"))

  def end(self) -> None:
    self._queue.put_nowait(None)

  async def events(self):
    while True:
      item = await self._queue.get()
      if item is None:
        self.ready_state = ReadyState.CLOSED
        return
      if isinstance(item, BaseException):
        self.ready_state = ReadyState.CLOSED
        raise item
      yield item


class FakeTransport(StreamTransport):
  """
  Records every stream it opens.

  ``auto_open`` accepts new streams immediately; ``refuse_opens`` makes the
  next N opens fail.
  """

  def __init__(self, auto_open: bool = True):
    self.auto_open = auto_open
    self.refuse_opens = 0
    self.handles: List[FakeEventSource] = []
    self.closed = False

  def open(self, url, params, headers) -> FakeEventSource:
    handle = FakeEventSource(url, params, headers)
    if self.refuse_opens > 0:
      self.refuse_opens -= 1
      handle.refuse()
    elif self.auto_open:
      handle.accept()
    self.handles.append(handle)
    return handle

  @property
  def last(self) -> FakeEventSource:
    return self.handles[-1]

  def sequences(self) -> List[int]:
    """from_sequence of every open, in order."""
    return [int(h.params["from_sequence"]) for h in self.handles]

  async def aclose(self) -> None:
    self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
  return FakeClock()


@pytest.fixture
def transport():
  return FakeTransport()


@pytest.fixture
def config():
  return SDKExtensionsConfig(
    base_url="http://api.test",
    token=None,
    http_max_retries=0,
  )


class Router:
  """httpx.MockTransport handler that answers by (method, path)."""

  def __init__(self):
    self.routes = {}
    self.requests: List[httpx.Request] = []

  def add(self, method: str, path: str, response):
    """``response`` is an httpx.Response, a JSON body, or a list consumed in order."""
    self.routes[(method, path)] = response

  def calls(self, method: str, path: str) -> List[httpx.Request]:
    return [r for r in self.requests if r.method == method and r.url.path == path]

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    response = self.routes.get((request.method, request.url.path))
    if response is None:
      return httpx.Response(404, json={"detail": "Not found"})
    if isinstance(response, list):
      response = response.pop(0) if len(response) > 1 else response[0]
    if isinstance(response, httpx.Response):
      return response
    return httpx.Response(200, json=response)


@pytest.fixture
def router():
  return Router()


@pytest.fixture
def extensions(config, transport, router, clock):
  ext = RoboSystemsExtensions(
    config,
    transport=transport,
    http_transport=httpx.MockTransport(router),
    clock=clock,
  )
  return ext
