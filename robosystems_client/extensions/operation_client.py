"""
Operation monitoring over event streams.

The OperationClient turns an operation's event stream into a single terminal
OperationResult, relays progress and queue position to callbacks, and keeps a
registry of live stream clients that is pruned by a grace-period cleanup
after each resolution and by a periodic sweep.

A failed or cancelled operation is a *result*, not an exception. Exceptions
are reserved for the monitoring itself going wrong: the local timeout
expiring or the stream being lost for good.
"""

import asyncio
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
  Any,
  AsyncIterator,
  Callable,
  Dict,
  Generic,
  KeysView,
  List,
  Optional,
  TypeVar,
  Union,
)

from robosystems_client.config.constants import OPERATION_PATH, OPERATION_STATUS_PATH
from robosystems_client.exceptions import (
  OperationConnectionError,
  OperationFailedError,
  OperationTimeoutError,
  RoboSystemsClientError,
  SSEConnectionError,
)
from robosystems_client.logger import log_app_error, operations_logger
from .api import APIClient
from .clock import Clock, TimerHandle, default_clock
from .config import SDKExtensionsConfig
from .events import ConnectionSignal, EventType, SSEEvent
from .sse_client import SSEClient
from .transport import StreamTransport

T = TypeVar("T")

OPERATION_CANCELLED = "Operation cancelled"


@dataclass
class OperationResult(Generic[T]):
  """
  Terminal outcome of a monitored operation.

  Exactly one of ``result`` / ``error`` is meaningful: a successful result
  never carries an error and a failed one never carries a result.
  """

  success: bool
  result: Optional[T] = None
  error: Optional[str] = None
  metadata: Optional[Dict[str, Any]] = None

  def __post_init__(self):
    if self.success and self.error is not None:
      raise ValueError("A successful OperationResult cannot carry an error")
    if not self.success and self.result is not None:
      raise ValueError("A failed OperationResult cannot carry a result")

  @property
  def cancelled(self) -> bool:
    return not self.success and self.error == OPERATION_CANCELLED

  @classmethod
  def ok(cls, result: T, metadata: Optional[Dict[str, Any]] = None) -> "OperationResult[T]":
    return cls(success=True, result=result, metadata=metadata)

  @classmethod
  def failed(
    cls, error: str, metadata: Optional[Dict[str, Any]] = None
  ) -> "OperationResult[T]":
    return cls(success=False, error=error, metadata=metadata)


@dataclass
class OperationProgress:
  """A progress report relayed from an operation_progress event."""

  message: str
  progress_percent: Optional[float] = None
  details: Optional[Dict[str, Any]] = None


@dataclass
class QueueUpdate:
  position: Optional[int]
  estimated_wait_seconds: float = 0.0


ProgressCallback = Callable[[OperationProgress], None]
QueueUpdateCallback = Callable[[Optional[int], float], None]
MonitorUpdate = Union[OperationProgress, QueueUpdate, OperationResult]


class OperationClient:
  """
  Monitors long-running operations and manages their stream clients.

  Args:
      config: Extension configuration
      api: HTTP client for status and cancel calls
      transport: Stream transport handed to every SSEClient
      clock: Time source for timeouts, grace cleanup and the periodic sweep
  """

  def __init__(
    self,
    config: SDKExtensionsConfig,
    api: Optional[APIClient] = None,
    transport: Optional[StreamTransport] = None,
    clock: Optional[Clock] = None,
  ):
    self.config = config
    self._clock = clock or default_clock
    self._transport = transport
    self.api = api or APIClient(config, clock=self._clock)

    self._connections: Dict[str, SSEClient] = {}
    self._cleanup_timers: Dict[str, TimerHandle] = {}
    self._sweep_timer: Optional[TimerHandle] = None

  def create_sse_client(self) -> SSEClient:
    return SSEClient(self.config, transport=self._transport, clock=self._clock)

  @property
  def active_operations(self) -> KeysView[str]:
    """Read-only live view of the operation ids currently registered."""
    return MappingProxyType(self._connections).keys()

  # --------------------------------------------------------------------------
  # Monitoring
  # --------------------------------------------------------------------------

  async def monitor_operation(
    self,
    operation_id: str,
    on_progress: Optional[ProgressCallback] = None,
    on_queue_update: Optional[QueueUpdateCallback] = None,
    timeout: Optional[float] = None,
  ) -> OperationResult:
    """
    Follow an operation until it reaches a terminal state.

    Args:
        operation_id: Operation to monitor
        on_progress: Called with an OperationProgress for each progress event
        on_queue_update: Called with (position, estimated_wait_seconds)
        timeout: Seconds before monitoring gives up (defaults to config.monitor_timeout)

    Returns:
        OperationResult: success with the completion payload, or failure with
        the server's error message or "Operation cancelled"

    Raises:
        OperationTimeoutError: The timeout elapsed first
        OperationConnectionError: The stream was lost for good
        SSEConnectionError: The stream could not be opened at all
    """
    if timeout is None:
      timeout = self.config.monitor_timeout

    # A second monitor for the same id replaces the first
    if operation_id in self._connections:
      self._release(operation_id, reason="replaced")

    client = self.create_sse_client()
    self._connections[operation_id] = client
    self._ensure_sweep()

    outcome: asyncio.Future = asyncio.get_running_loop().create_future()
    timer: Optional[TimerHandle] = None

    def settle(
      result: Optional[OperationResult] = None,
      error: Optional[Exception] = None,
    ) -> None:
      if outcome.done():
        return
      if timer is not None:
        timer.cancel()
      if error is not None:
        outcome.set_exception(error)
      else:
        outcome.set_result(result)
      if self._connections.get(operation_id) is client:
        self._schedule_cleanup(operation_id, client)

    def handle_queue_update(event: SSEEvent) -> None:
      if on_queue_update is not None:
        payload = event.payload
        on_queue_update(payload.current_position, payload.estimated_wait_seconds or 0)

    def handle_progress(event: SSEEvent) -> None:
      if on_progress is not None:
        payload = event.payload
        on_progress(
          OperationProgress(
            message=payload.display_message,
            progress_percent=payload.percent,
            details=event.data,
          )
        )

    def handle_completed(event: SSEEvent) -> None:
      data = event.data
      result = data.get("result")
      settle(OperationResult.ok(result if result is not None else data, data.get("metadata")))

    def handle_error(event: SSEEvent) -> None:
      settle(OperationResult.failed(event.payload.error_message, event.data.get("metadata")))

    def handle_cancelled(event: SSEEvent) -> None:
      settle(OperationResult.failed(OPERATION_CANCELLED, event.data))

    def handle_max_retries(info: Dict[str, Any]) -> None:
      settle(
        error=OperationConnectionError(
          f"Lost connection to operation {operation_id} after "
          f"{info.get('attempts')} reconnection attempts",
          operation_id,
        )
      )

    def handle_closed(info: Dict[str, Any]) -> None:
      if info.get("reason") == "cancelled":
        settle(
          OperationResult.failed(
            OPERATION_CANCELLED, {"operation_id": operation_id, "reason": "cancelled"}
          )
        )
      else:
        settle(
          error=OperationConnectionError(
            f"Connection closed before operation {operation_id} finished "
            f"({info.get('reason')})",
            operation_id,
          )
        )

    client.on(EventType.QUEUE_UPDATE, handle_queue_update)
    client.on(EventType.OPERATION_PROGRESS, handle_progress)
    client.on(EventType.OPERATION_COMPLETED, handle_completed)
    client.on(EventType.OPERATION_ERROR, handle_error)
    client.on(EventType.OPERATION_CANCELLED, handle_cancelled)
    client.on(ConnectionSignal.MAX_RETRIES_EXCEEDED, handle_max_retries)
    client.on(ConnectionSignal.CLOSED, handle_closed)

    if timeout is not None:

      def on_timeout() -> None:
        if outcome.done():
          return
        operations_logger.warning(
          f"Monitoring of operation {operation_id} timed out after {timeout}s",
          extra={"operation_id": operation_id, "action": "monitor"},
        )
        outcome.set_exception(OperationTimeoutError(operation_id, timeout))
        self._release(operation_id, client, reason="timeout")

      timer = self._clock.call_later(timeout, on_timeout)

    operations_logger.info(
      f"Monitoring operation {operation_id}",
      extra={"operation_id": operation_id, "action": "monitor"},
    )

    try:
      await client.connect(operation_id)
    except SSEConnectionError as e:
      if timer is not None:
        timer.cancel()
      self._release(operation_id, client)
      log_app_error(
        e,
        component="OperationClient",
        action="monitor_operation",
        error_category="connection",
        operation_id=operation_id,
      )
      error = outcome.exception() if outcome.done() else None
      if isinstance(error, OperationTimeoutError):
        raise error
      raise

    try:
      return await outcome
    except asyncio.CancelledError:
      if timer is not None:
        timer.cancel()
      self._release(operation_id, client, reason="monitor_cancelled")
      raise

  async def monitor_with_progress(
    self, operation_id: str, timeout: Optional[float] = None
  ) -> AsyncIterator[MonitorUpdate]:
    """
    Iterate over an operation's progress and queue updates.

    Yields OperationProgress and QueueUpdate values as they arrive and ends
    with exactly one OperationResult. Monitoring failures are reported as a
    failed result rather than raised.
    """
    queue: asyncio.Queue = asyncio.Queue()
    done = object()

    task = asyncio.ensure_future(
      self.monitor_operation(
        operation_id,
        on_progress=queue.put_nowait,
        on_queue_update=lambda position, wait: queue.put_nowait(QueueUpdate(position, wait)),
        timeout=timeout,
      )
    )
    task.add_done_callback(lambda _: queue.put_nowait(done))

    try:
      while True:
        item = await queue.get()
        if item is done:
          break
        yield item

      try:
        result = task.result()
      except RoboSystemsClientError as e:
        result = OperationResult.failed(str(e), {"operation_id": operation_id})
      yield result
    finally:
      if not task.done():
        task.cancel()

  async def monitor_multiple(
    self,
    operation_ids: List[str],
    on_progress: Optional[Callable[[str, OperationProgress], None]] = None,
    timeout: Optional[float] = None,
  ) -> Dict[str, OperationResult]:
    """
    Monitor several operations concurrently.

    Args:
        operation_ids: Operations to monitor
        on_progress: Called with (operation_id, progress) for every progress event
        timeout: Per-operation monitoring timeout

    Returns:
        Mapping of operation id to its result
    """
    if not operation_ids:
      return {}

    def progress_for(operation_id: str) -> Optional[ProgressCallback]:
      if on_progress is None:
        return None
      return lambda progress: on_progress(operation_id, progress)

    results = await asyncio.gather(
      *(
        self.monitor_operation(op_id, on_progress=progress_for(op_id), timeout=timeout)
        for op_id in operation_ids
      )
    )
    return dict(zip(operation_ids, results))

  async def wait_for_operation(
    self,
    operation_id: str,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> Any:
    """
    Wait for an operation and return its result payload.

    Raises:
        OperationFailedError: The operation failed or was cancelled
    """
    result = await self.monitor_operation(
      operation_id, on_progress=on_progress, timeout=timeout
    )
    if not result.success:
      raise OperationFailedError(result.error or "Operation failed", operation_id)
    return result.result

  # --------------------------------------------------------------------------
  # Server calls
  # --------------------------------------------------------------------------

  async def get_status(self, operation_id: str) -> Dict[str, Any]:
    """One-shot status lookup, independent of any stream."""
    return await self.api.get_json(OPERATION_STATUS_PATH.format(operation_id=operation_id))

  async def cancel_operation(self, operation_id: str) -> Any:
    """
    Cancel an operation.

    The local stream is released before the server is asked, so local
    cleanup happens even when the cancel request fails.
    """
    self._release(operation_id, reason="cancelled")
    operations_logger.info(
      f"Cancelling operation {operation_id}",
      extra={"operation_id": operation_id, "action": "cancel"},
    )
    return await self.api.delete(OPERATION_PATH.format(operation_id=operation_id))

  # --------------------------------------------------------------------------
  # Registry housekeeping
  # --------------------------------------------------------------------------

  def release(self, operation_id: str) -> None:
    """Stop following an operation locally without cancelling it on the server."""
    self._release(operation_id, reason="released")

  def _release(
    self,
    operation_id: str,
    client: Optional[SSEClient] = None,
    reason: Optional[str] = None,
  ) -> None:
    """Unregister an operation and close its client."""
    timer = self._cleanup_timers.pop(operation_id, None)
    if timer is not None:
      timer.cancel()

    registered = self._connections.get(operation_id)
    if client is None:
      client = registered
    if registered is not None and registered is client:
      del self._connections[operation_id]

    if client is not None:
      client.close(reason=reason)

  def _schedule_cleanup(self, operation_id: str, client: SSEClient) -> None:
    existing = self._cleanup_timers.pop(operation_id, None)
    if existing is not None:
      existing.cancel()

    def cleanup() -> None:
      self._cleanup_timers.pop(operation_id, None)
      self._release(operation_id, client)

    self._cleanup_timers[operation_id] = self._clock.call_later(
      self.config.cleanup_delay, cleanup
    )

  def _ensure_sweep(self) -> None:
    if self._sweep_timer is None:
      self._sweep_timer = self._clock.call_later(self.config.cleanup_interval, self._sweep)

  def _sweep(self) -> None:
    self._sweep_timer = None
    stale = [op_id for op_id, c in self._connections.items() if not c.is_connected()]
    for op_id in stale:
      self._release(op_id, reason="stale")
    if stale:
      operations_logger.info(
        f"Swept {len(stale)} stale operation stream(s)",
        extra={"action": "sweep", "metadata": {"operation_ids": stale}},
      )
    if self._connections:
      self._ensure_sweep()

  def close_all(self) -> None:
    """Release every stream, cancel every pending timer, stop the sweep."""
    if self._sweep_timer is not None:
      self._sweep_timer.cancel()
      self._sweep_timer = None

    for operation_id in list(self._connections):
      self._release(operation_id, reason="close_all")

    for timer in self._cleanup_timers.values():
      timer.cancel()
    self._cleanup_timers.clear()
