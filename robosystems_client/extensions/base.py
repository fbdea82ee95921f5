"""
Shared plumbing for request executors.

Every executor follows the same shape: send the initiating request, and if
the server answers with a queued/accepted operation either raise the
executor's Queued*Error (when the caller passed ``max_wait=0``) or hand the
operation id to the shared OperationClient and wait for its result.
"""

from typing import Any, Dict, Optional, Type

from robosystems_client.exceptions import QueuedOperationError
from .api import APIClient
from .clock import Clock, default_clock
from .config import SDKExtensionsConfig
from .operation_client import (
  OperationClient,
  OperationResult,
  ProgressCallback,
  QueueUpdateCallback,
)


class OperationExecutor:
  """Base class for clients that start operations and wait on them."""

  def __init__(
    self,
    config: SDKExtensionsConfig,
    api: APIClient,
    operations: OperationClient,
    clock: Optional[Clock] = None,
  ):
    self.config = config
    self.api = api
    self.operations = operations
    self._clock = clock or default_clock

  @staticmethod
  def _handle_queued(
    response: Dict[str, Any],
    max_wait: Optional[float],
    error_cls: Type[QueuedOperationError],
  ) -> None:
    """
    Raise ``error_cls`` with the response verbatim when the caller will not wait.

    Args:
        response: The queued/accepted response body
        max_wait: Caller's wait budget; 0 means "do not wait"
        error_cls: QueuedOperationError subclass for this executor
    """
    if max_wait == 0:
      raise error_cls(response)

  async def _await_operation(
    self,
    operation_id: str,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_queue_update: Optional[QueueUpdateCallback] = None,
  ) -> OperationResult:
    return await self.operations.monitor_operation(
      operation_id,
      on_progress=on_progress,
      on_queue_update=on_queue_update,
      timeout=timeout,
    )

  async def close(self) -> None:
    """Release per-executor resources. The shared clients are owned elsewhere."""
    return None
