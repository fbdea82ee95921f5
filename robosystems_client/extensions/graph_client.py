"""
Graph lifecycle client.

Creates graphs and waits for provisioning to finish. Creation is followed
over the operation event stream when possible; if the stream cannot be
established or is lost, the client falls back to polling the operation's
status endpoint at a fixed interval.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from robosystems_client.config.constants import (
  DEFAULT_GRAPH_CREATION_TIMEOUT,
  DEFAULT_GRAPH_POLL_INTERVAL,
)
from robosystems_client.exceptions import (
  GraphCreationError,
  GraphCreationTimeoutError,
  GraphNotFoundError,
  OperationConnectionError,
  OperationTimeoutError,
  SSEConnectionError,
  UnexpectedResponseError,
)
from robosystems_client.logger import logger
from .base import OperationExecutor
from .operation_client import OperationProgress


@dataclass
class GraphMetadataInput:
  graph_name: str
  description: Optional[str] = None
  schema_extensions: List[str] = field(default_factory=list)
  tags: List[str] = field(default_factory=list)


@dataclass
class InitialEntityInput:
  name: str
  uri: str
  category: Optional[str] = None
  sic: Optional[str] = None
  sic_description: Optional[str] = None


@dataclass
class GraphInfo:
  graph_id: str
  graph_name: str
  description: Optional[str] = None
  schema_extensions: Optional[List[str]] = None
  tags: Optional[List[str]] = None
  created_at: Optional[str] = None
  status: Optional[str] = None

  @classmethod
  def from_api(cls, data: Dict[str, Any]) -> "GraphInfo":
    return cls(
      graph_id=data.get("graph_id") or data.get("id"),
      graph_name=data.get("graph_name") or data.get("name"),
      description=data.get("description"),
      schema_extensions=data.get("schema_extensions"),
      tags=data.get("tags"),
      created_at=data.get("created_at"),
      status=data.get("status"),
    )


class GraphClient(OperationExecutor):
  """Client for graph management operations."""

  def __init__(self, *args, **kwargs):
    super().__init__(*args, **kwargs)
    self._operation_ids: Set[str] = set()

  async def create_graph_and_wait(
    self,
    metadata: GraphMetadataInput,
    initial_entity: Optional[InitialEntityInput] = None,
    create_entity: bool = True,
    timeout: float = DEFAULT_GRAPH_CREATION_TIMEOUT,
    poll_interval: float = DEFAULT_GRAPH_POLL_INTERVAL,
    use_sse: bool = True,
    on_progress: Optional[Callable[[str], None]] = None,
  ) -> str:
    """
    Create a graph and wait for it to be provisioned.

    Args:
        metadata: Graph name, description, schema extensions and tags
        initial_entity: Optional entity to seed the graph with
        create_entity: Populate the entity node (only with initial_entity)
        timeout: Seconds to wait for provisioning
        poll_interval: Seconds between status checks when polling
        use_sse: Follow the operation stream before falling back to polling
        on_progress: Receives human-readable progress messages

    Returns:
        The new graph's id

    Raises:
        GraphCreationError: The server reported a failure
        GraphCreationTimeoutError: Provisioning did not finish in time
    """

    def report(message: str) -> None:
      if on_progress is not None:
        on_progress(message)

    body: Dict[str, Any] = {
      "metadata": {
        "graph_name": metadata.graph_name,
        "description": metadata.description,
        "schema_extensions": metadata.schema_extensions,
        "tags": metadata.tags,
      },
      "initial_entity": None,
      "create_entity": create_entity,
    }
    if initial_entity is not None:
      body["initial_entity"] = {
        "name": initial_entity.name,
        "uri": initial_entity.uri,
        "category": initial_entity.category,
        "sic": initial_entity.sic,
        "sic_description": initial_entity.sic_description,
      }

    report(f"Creating graph: {metadata.graph_name}")
    response = await self.api.post_json("/v1/graphs", json_data=body)

    if response.get("graph_id"):
      report(f"Graph created: {response['graph_id']}")
      return response["graph_id"]

    operation_id = response.get("operation_id")
    if not operation_id:
      raise UnexpectedResponseError("graph creation", response)

    report(f"Graph creation queued (operation: {operation_id})")
    self._operation_ids.add(operation_id)
    try:
      if use_sse:
        graph_id = await self._wait_with_sse(operation_id, timeout, report)
        if graph_id is not None:
          return graph_id
      return await self._wait_with_polling(operation_id, timeout, poll_interval, report)
    finally:
      self._operation_ids.discard(operation_id)

  async def _wait_with_sse(
    self, operation_id: str, timeout: float, report: Callable[[str], None]
  ) -> Optional[str]:
    """Follow the operation stream; None means the stream was unavailable."""

    def relay(progress: OperationProgress) -> None:
      report(progress.message)

    try:
      result = await self._await_operation(operation_id, timeout=timeout, on_progress=relay)
    except (SSEConnectionError, OperationConnectionError) as e:
      logger.warning(
        f"Stream unavailable for graph creation {operation_id}, falling back to polling: {e}",
        extra={"operation_id": operation_id, "action": "create_graph"},
      )
      return None
    except OperationTimeoutError as e:
      raise GraphCreationTimeoutError(timeout, operation_id) from e

    if not result.success:
      raise GraphCreationError(f"Graph creation failed: {result.error}", operation_id)

    graph_id = result.result.get("graph_id") if isinstance(result.result, dict) else None
    if not graph_id:
      raise GraphCreationError("Operation completed but no graph_id in result", operation_id)
    report(f"Graph created: {graph_id}")
    return graph_id

  async def _wait_with_polling(
    self,
    operation_id: str,
    timeout: float,
    poll_interval: float,
    report: Callable[[str], None],
  ) -> str:
    max_attempts = int(timeout / poll_interval)
    for attempt in range(max_attempts):
      await self._clock.sleep(poll_interval)
      status_data = await self.operations.get_status(operation_id)
      status = status_data.get("status")
      report(f"Status: {status} (attempt {attempt + 1}/{max_attempts})")

      if status == "completed":
        result = status_data.get("result") or {}
        graph_id = result.get("graph_id") if isinstance(result, dict) else None
        if not graph_id:
          raise GraphCreationError(
            "Operation completed but no graph_id in result", operation_id
          )
        report(f"Graph created: {graph_id}")
        return graph_id
      if status == "failed":
        error = status_data.get("error") or status_data.get("message") or "Unknown error"
        raise GraphCreationError(f"Graph creation failed: {error}", operation_id)

    raise GraphCreationTimeoutError(timeout, operation_id)

  async def list_graphs(self) -> List[GraphInfo]:
    response = await self.api.get_json("/v1/graphs")
    return [GraphInfo.from_api(g) for g in response.get("graphs") or []]

  async def get_graph_info(self, graph_id: str) -> GraphInfo:
    """
    Look up a single graph.

    Raises:
        GraphNotFoundError: No graph with that id is visible to the caller
    """
    for graph in await self.list_graphs():
      if graph.graph_id == graph_id:
        return graph
    raise GraphNotFoundError(graph_id)

  async def close(self) -> None:
    """Stop following any graph creation still in progress."""
    for operation_id in list(self._operation_ids):
      self.operations.release(operation_id)
    self._operation_ids.clear()
