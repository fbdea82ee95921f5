"""
RoboSystems SDK extensions context.

Builds the HTTP client, the shared operation monitor and every executor
from one configuration, and closes them together. Create one per
application (or per test) and pass it around; there is no global instance.
"""

from typing import Optional

import httpx

from robosystems_client.logger import logger
from .agent_client import AgentClient
from .api import APIClient
from .clock import Clock, default_clock
from .config import SDKExtensionsConfig
from .copy_client import CopyClient
from .graph_client import GraphClient
from .materialization_client import MaterializationClient
from .operation_client import OperationClient, OperationResult, ProgressCallback
from .query_client import QueryClient
from .sse_client import SSEClient
from .table_client import TableClient
from .transport import HttpxSSETransport, StreamTransport


class RoboSystemsExtensions:
  """
  Enhanced RoboSystems clients with stream-based operation monitoring.

  Usage:
      async with RoboSystemsExtensions(SDKExtensionsConfig.from_env()) as ext:
          result = await ext.query.query("kg123", "MATCH (n) RETURN count(n)")

  Args:
      config: Extension configuration; defaults to the environment
      transport: Stream transport; defaults to httpx-sse
      http_transport: httpx transport for initiating requests
      clock: Time source shared by every component
  """

  def __init__(
    self,
    config: Optional[SDKExtensionsConfig] = None,
    transport: Optional[StreamTransport] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None,
  ):
    self.config = config or SDKExtensionsConfig.from_env()
    self.clock = clock or default_clock
    self.transport = transport or HttpxSSETransport(self.config)

    self.api = APIClient(self.config, http_transport=http_transport, clock=self.clock)
    self.operations = OperationClient(
      self.config, api=self.api, transport=self.transport, clock=self.clock
    )

    executor_args = (self.config, self.api, self.operations, self.clock)
    self.query = QueryClient(*executor_args)
    self.copy = CopyClient(*executor_args)
    self.agent = AgentClient(*executor_args)
    self.materialization = MaterializationClient(*executor_args)
    self.graphs = GraphClient(*executor_args)
    self.tables = TableClient(*executor_args)

    self._closed = False
    logger.debug(f"RoboSystems extensions initialized for {self.config.base_url}")

  def create_sse_client(self) -> SSEClient:
    """Create a standalone stream client for advanced use cases."""
    return SSEClient(self.config, transport=self.transport, clock=self.clock)

  async def monitor_operation(
    self,
    operation_id: str,
    on_progress: Optional[ProgressCallback] = None,
    timeout: Optional[float] = None,
  ) -> OperationResult:
    """Convenience method to monitor any operation."""
    return await self.operations.monitor_operation(
      operation_id, on_progress=on_progress, timeout=timeout
    )

  async def close(self) -> None:
    """Clean up all active streams and HTTP connections."""
    if self._closed:
      return
    self._closed = True

    for executor in (
      self.query,
      self.copy,
      self.agent,
      self.materialization,
      self.graphs,
      self.tables,
    ):
      await executor.close()
    self.operations.close_all()
    await self.transport.aclose()
    await self.api.close()

  async def __aenter__(self) -> "RoboSystemsExtensions":
    return self

  async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
    await self.close()
