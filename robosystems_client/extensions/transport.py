"""
Server-push transport for operation streams.

A StreamTransport opens EventSourceHandles. Each handle is an async context
manager: entering it performs the HTTP request and returns once the server
has answered with an event stream; iterating ``events()`` yields raw events
until the stream ends or fails; exiting releases the connection.

The SSE client never touches httpx directly, which keeps reconnection logic
testable against scripted transports.
"""

from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from enum import IntEnum
from typing import AsyncIterator, Dict, Optional

import httpx
from httpx_sse import aconnect_sse

from robosystems_client.exceptions import SSEConnectionError
from robosystems_client.logger import sse_logger
from .config import SDKExtensionsConfig
from .events import RawEvent


class ReadyState(IntEnum):
  """Mirrors the browser EventSource readyState values."""

  CONNECTING = 0
  OPEN = 1
  CLOSED = 2


class EventSourceHandle(ABC):
  """One server-push stream."""

  def __init__(self, url: str, params: Dict[str, str], headers: Dict[str, str]):
    self.url = url
    self.params = params
    self.headers = headers
    self.ready_state = ReadyState.CONNECTING

  @abstractmethod
  async def __aenter__(self) -> "EventSourceHandle": ...

  @abstractmethod
  async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...

  @abstractmethod
  def events(self) -> AsyncIterator[RawEvent]:
    """Yield raw events until the stream ends. Transport failures raise."""
    ...


class StreamTransport(ABC):
  """Factory for EventSourceHandles."""

  @abstractmethod
  def open(
    self, url: str, params: Dict[str, str], headers: Dict[str, str]
  ) -> EventSourceHandle: ...

  async def aclose(self) -> None:
    """Release any shared resources held by the transport."""
    return None


class HttpxEventSource(EventSourceHandle):
  """EventSourceHandle backed by an httpx streaming response."""

  def __init__(
    self,
    url: str,
    params: Dict[str, str],
    headers: Dict[str, str],
    client: Optional[httpx.AsyncClient],
    client_factory,
  ):
    super().__init__(url, params, headers)
    self._client = client
    self._client_factory = client_factory
    self._stack: Optional[AsyncExitStack] = None
    self._source = None

  async def __aenter__(self) -> "HttpxEventSource":
    self.ready_state = ReadyState.CONNECTING
    stack = AsyncExitStack()
    try:
      client = self._client
      if client is None:
        # Dedicated client for this stream only
        client = await stack.enter_async_context(self._client_factory())

      source = await stack.enter_async_context(
        aconnect_sse(
          client, "GET", self.url, params=self.params, headers=dict(self.headers)
        )
      )
      response = source.response
      if response.status_code >= 400:
        body = await response.aread()
        raise SSEConnectionError(
          f"Stream request failed with HTTP {response.status_code}",
          status_code=response.status_code,
          body=body.decode(errors="replace")[:200],
        )
    except BaseException:
      self.ready_state = ReadyState.CLOSED
      await stack.aclose()
      raise

    self._stack = stack
    self._source = source
    self.ready_state = ReadyState.OPEN
    sse_logger.debug(f"Opened event stream {self.url} params={self.params}")
    return self

  async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
    self.ready_state = ReadyState.CLOSED
    if self._stack is not None:
      stack, self._stack = self._stack, None
      await stack.__aexit__(exc_type, exc_val, exc_tb)

  async def events(self) -> AsyncIterator[RawEvent]:
    if self._source is None:
      raise SSEConnectionError("Event stream is not open")
    async for sse in self._source.aiter_sse():
      yield RawEvent(event=sse.event, data=sse.data, id=sse.id or None)
    self.ready_state = ReadyState.CLOSED


class HttpxSSETransport(StreamTransport):
  """
  Opens operation streams with httpx and httpx-sse.

  Args:
      config: Extension configuration (timeouts, TLS verification)
      client: Optional shared AsyncClient. When omitted, each stream gets a
          dedicated client that is closed together with the stream.
  """

  def __init__(
    self,
    config: SDKExtensionsConfig,
    client: Optional[httpx.AsyncClient] = None,
  ):
    self.config = config
    self._client = client

  def _new_client(self) -> httpx.AsyncClient:
    # No read timeout: streams stay open for the whole operation
    return httpx.AsyncClient(
      timeout=httpx.Timeout(None, connect=self.config.connect_timeout),
      verify=self.config.verify_ssl,
    )

  def open(
    self, url: str, params: Dict[str, str], headers: Dict[str, str]
  ) -> HttpxEventSource:
    return HttpxEventSource(url, params, headers, self._client, self._new_client)

  async def aclose(self) -> None:
    if self._client is not None:
      await self._client.aclose()
