"""
SSE client for monitoring long-running RoboSystems operations.

One SSEClient follows one operation's event stream. It decodes each event,
dispatches it to typed listeners, reconnects with exponential backoff when
the transport drops, and resumes from the sequence after the last event it
saw so nothing is delivered twice or skipped across a reconnect.
"""

import asyncio
from typing import Any, Callable, Optional, Set

from robosystems_client.config.constants import OPERATION_STREAM_PATH
from robosystems_client.exceptions import (
  SSEConnectionError,
  SSEConnectionTimeoutError,
  SSEMaxRetriesExceededError,
)
from robosystems_client.logger import sse_logger
from .clock import Clock, default_clock
from .config import SDKExtensionsConfig
from .dispatcher import EventDispatcher
from .events import (
  SERVER_CONTROL_EVENTS,
  ConnectionSignal,
  EventDecodeError,
  EventKind,
  EventType,
  RawEvent,
  SSEEvent,
  decode_event,
)
from .transport import EventSourceHandle, HttpxSSETransport, ReadyState, StreamTransport


def _current_task() -> Optional[asyncio.Task]:
  try:
    return asyncio.current_task()
  except RuntimeError:
    return None


class SSEClient:
  """
  Resilient event-stream connection for a single operation.

  Features:
  - Typed dispatch of operation events plus wildcard listeners
  - Automatic reconnection with exponential backoff
  - Resume from the last seen sequence number
  - Self-closing after a terminal event
  - Stale-stream warnings based on the heartbeat interval

  Lifecycle signals (``ConnectionSignal``) are emitted alongside operation
  events: ``connected``, ``reconnecting``, ``max_retries_exceeded``,
  ``parse_error`` and ``closed``.
  """

  def __init__(
    self,
    config: SDKExtensionsConfig,
    transport: Optional[StreamTransport] = None,
    clock: Optional[Clock] = None,
  ):
    """
    Initialize SSE client.

    Args:
        config: Extension configuration (URL, auth, retry and timing knobs)
        transport: Stream transport; defaults to httpx-sse
        clock: Time source for backoff and timeouts
    """
    self.config = config
    self._transport = transport or HttpxSSETransport(config)
    self._clock = clock or default_clock
    self._dispatcher = EventDispatcher()

    self.operation_id: Optional[str] = None
    self.reconnect_attempts = 0
    self.last_sequence: Optional[int] = None
    self.last_event_at: Optional[float] = None
    self.closed = False

    self._from_sequence = 0
    self._handle: Optional[EventSourceHandle] = None
    self._opened: Optional[asyncio.Future] = None
    self._tasks: Set[asyncio.Task] = set()

  # --------------------------------------------------------------------------
  # Connection lifecycle
  # --------------------------------------------------------------------------

  async def connect(self, operation_id: str, from_sequence: int = 0) -> None:
    """
    Open the event stream for an operation.

    Returns once the server has answered with an open stream. After that,
    transport failures are handled by reconnection and never raise here.

    Args:
        operation_id: Operation to follow
        from_sequence: First sequence number to replay

    Raises:
        SSEConnectionTimeoutError: The stream did not open within connect_timeout
        SSEConnectionError: The stream could not be opened, or the client is closed
    """
    if self.closed:
      raise SSEConnectionError("SSE client is closed", operation_id=operation_id)
    if self._handle is not None:
      raise SSEConnectionError(
        f"SSE client is already following {self.operation_id}",
        operation_id=operation_id,
      )

    self.operation_id = operation_id
    self._from_sequence = from_sequence

    try:
      await self._open(from_sequence)
    except SSEConnectionError as e:
      sse_logger.error(
        f"Failed to connect to stream for operation {operation_id}: {e}",
        extra={"operation_id": operation_id, "action": "connect"},
      )
      self.close(reason="connect_failed")
      raise

  async def _open(self, from_sequence: int) -> None:
    url = f"{self.config.base_url}{OPERATION_STREAM_PATH.format(operation_id=self.operation_id)}"
    params = {"from_sequence": str(from_sequence), **self.config.stream_params()}
    handle = self._transport.open(url, params=params, headers=self.config.auth_headers())

    opened = asyncio.get_running_loop().create_future()
    self._handle = handle
    self._opened = opened
    self._spawn(self._pump(handle, opened))

    def on_timeout() -> None:
      if not opened.done():
        opened.set_exception(
          SSEConnectionTimeoutError(self.operation_id, self.config.connect_timeout)
        )

    timer = self._clock.call_later(self.config.connect_timeout, on_timeout)
    try:
      await opened
    except BaseException:
      self._release(handle)
      raise
    finally:
      timer.cancel()
      if self._opened is opened:
        self._opened = None

  def _on_open(self, handle: EventSourceHandle) -> None:
    self.reconnect_attempts = 0
    from_sequence = handle.params.get("from_sequence")
    sse_logger.info(
      f"Connected to stream for operation {self.operation_id} from sequence {from_sequence}",
      extra={
        "operation_id": self.operation_id,
        "action": "connect",
        "sequence_number": from_sequence,
      },
    )
    self._dispatcher.emit(
      ConnectionSignal.CONNECTED,
      {"operation_id": self.operation_id, "from_sequence": int(from_sequence or 0)},
    )

  def _spawn(self, coro) -> asyncio.Task:
    task = asyncio.ensure_future(coro)
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    return task

  def _release(self, handle: EventSourceHandle) -> None:
    """Drop ownership of ``handle`` and stop the task driving it."""
    if self._handle is handle:
      self._handle = None
    current = _current_task()
    for task in list(self._tasks):
      if task is not current:
        task.cancel()

  async def _pump(self, handle: EventSourceHandle, opened: asyncio.Future) -> None:
    """Own the handle's context: open it, then read until it ends or fails."""
    error: Optional[BaseException] = None
    try:
      async with handle:
        if opened.done():
          # Timed out or closed while the request was in flight
          return
        opened.set_result(None)
        self._on_open(handle)
        if self.closed:
          return

        async for raw in handle.events():
          self._handle_raw(raw)
          if self.closed or handle is not self._handle:
            return
    except asyncio.CancelledError:
      raise
    except Exception as e:
      if not opened.done():
        if not isinstance(e, SSEConnectionError):
          e = SSEConnectionError(
            f"Failed to open stream: {e}", operation_id=self.operation_id
          )
        opened.set_exception(e)
        return
      error = e

    if self.closed or handle is not self._handle:
      return

    self._handle = None
    if error is None:
      error = SSEConnectionError(
        "Stream ended before a terminal event", operation_id=self.operation_id
      )
    await self._reconnect(error)

  async def _reconnect(self, error: BaseException) -> None:
    while not self.closed:
      if self.reconnect_attempts >= self.config.max_retries:
        exhausted = SSEMaxRetriesExceededError(self.operation_id, self.reconnect_attempts)
        sse_logger.error(
          f"Max reconnection attempts ({self.config.max_retries}) exceeded for "
          f"operation {self.operation_id}: {error}",
          extra={
            "operation_id": self.operation_id,
            "action": "reconnect",
            "attempt": self.reconnect_attempts,
          },
        )
        self._dispatcher.emit(
          ConnectionSignal.MAX_RETRIES_EXCEEDED,
          {
            "operation_id": self.operation_id,
            "attempts": self.reconnect_attempts,
            "error": exhausted,
            "cause": str(error),
          },
        )
        self.close(reason="max_retries_exceeded")
        return

      self.reconnect_attempts += 1
      attempt = self.reconnect_attempts
      delay = self.backoff_delay(attempt)
      sse_logger.warning(
        f"Stream for operation {self.operation_id} lost ({error}); "
        f"reconnecting in {delay}s (attempt {attempt}/{self.config.max_retries})",
        extra={
          "operation_id": self.operation_id,
          "action": "reconnect",
          "attempt": attempt,
          "sequence_number": self.last_sequence,
        },
      )
      self._dispatcher.emit(
        ConnectionSignal.RECONNECTING,
        {"attempt": attempt, "delay": delay, "last_sequence": self.last_sequence},
      )

      await self._clock.sleep(delay)
      if self.closed:
        return

      try:
        await self._open(self.resume_sequence)
        return
      except SSEConnectionError as e:
        error = e

  # --------------------------------------------------------------------------
  # Event handling
  # --------------------------------------------------------------------------

  def _handle_raw(self, raw: RawEvent) -> None:
    now = self._clock.time()
    if (
      self.last_event_at is not None
      and now - self.last_event_at > 2 * self.config.heartbeat_interval
    ):
      sse_logger.warning(
        f"No events for {now - self.last_event_at:.0f}s on operation {self.operation_id}",
        extra={"operation_id": self.operation_id, "action": "heartbeat"},
      )
    self.last_event_at = now

    if raw.event in SERVER_CONTROL_EVENTS:
      sse_logger.debug(
        f"Stream control event '{raw.event}' for operation {self.operation_id}"
      )
      return

    try:
      event = decode_event(raw)
    except EventDecodeError as e:
      sse_logger.warning(
        f"Failed to parse '{raw.event}' event for operation {self.operation_id}: {e}",
        extra={
          "operation_id": self.operation_id,
          "action": "parse",
          "event_type": raw.event,
        },
      )
      self._dispatcher.emit(
        ConnectionSignal.PARSE_ERROR,
        {"error": str(e), "raw_data": raw.data, "event": raw.event},
      )
      return

    if event.sequence_number is not None and (
      self.last_sequence is None or event.sequence_number > self.last_sequence
    ):
      self.last_sequence = event.sequence_number

    self._dispatcher.emit_wildcard(event)
    self._dispatcher.emit(event.event_type, event)

    if event.is_terminal:
      self.close(reason=event.event_type.value)

  # --------------------------------------------------------------------------
  # Public API
  # --------------------------------------------------------------------------

  @property
  def resume_sequence(self) -> int:
    """Sequence number the next (re)connect starts from."""
    if self.last_sequence is None:
      return self._from_sequence
    return self.last_sequence + 1

  def backoff_delay(self, attempt: int) -> float:
    """Delay before reconnect ``attempt`` (1-based)."""
    return self.config.retry_delay * (2 ** (attempt - 1))

  def on(self, kind: EventKind, listener: Callable[[Any], None]) -> None:
    self._dispatcher.on(kind, listener)

  def off(self, kind: EventKind, listener: Callable[[Any], None]) -> None:
    self._dispatcher.off(kind, listener)

  def on_any(self, listener: Callable[[SSEEvent], None]) -> None:
    """Receive every decoded operation event."""
    self._dispatcher.add_wildcard(listener)

  def off_any(self, listener: Callable[[SSEEvent], None]) -> None:
    self._dispatcher.remove_wildcard(listener)

  def is_connected(self) -> bool:
    return self._handle is not None and self._handle.ready_state == ReadyState.OPEN

  def close(self, reason: Optional[str] = None) -> None:
    """
    Close the stream. Safe to call any number of times.

    Emits ``closed`` once, then drops every listener.
    """
    if self.closed:
      return
    self.closed = True
    self._handle = None

    if self._opened is not None and not self._opened.done():
      self._opened.set_exception(
        SSEConnectionError("SSE client closed", operation_id=self.operation_id)
      )

    current = _current_task()
    for task in list(self._tasks):
      if task is not current:
        task.cancel()

    sse_logger.debug(
      f"Closed stream for operation {self.operation_id} ({reason or 'closed'})",
      extra={"operation_id": self.operation_id, "action": "close"},
    )
    self._dispatcher.emit(
      ConnectionSignal.CLOSED, {"operation_id": self.operation_id, "reason": reason}
    )
    self._dispatcher.clear()

  async def __aenter__(self) -> "SSEClient":
    return self

  async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
    self.close()


__all__ = ["SSEClient", "EventType", "ConnectionSignal"]
