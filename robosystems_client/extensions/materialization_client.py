"""
Materialization client.

Rebuilds a graph from its DuckDB staging tables and reports staleness. The
server may answer inline or queue the rebuild as an operation, in which case
it is followed over the event stream.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from robosystems_client.exceptions import (
  APIError,
  OperationError,
  QueuedMaterializationError,
  SSEConnectionError,
)
from robosystems_client.logger import logger
from .base import OperationExecutor
from .operation_client import OperationProgress, ProgressCallback


@dataclass
class MaterializationResult:
  status: str
  success: bool
  message: str
  was_stale: bool = False
  stale_reason: Optional[str] = None
  tables_materialized: List[str] = field(default_factory=list)
  total_rows: int = 0
  execution_time_ms: float = 0
  error: Optional[str] = None
  operation_id: Optional[str] = None

  @classmethod
  def from_payload(
    cls, payload: Dict[str, Any], operation_id: Optional[str] = None
  ) -> "MaterializationResult":
    return cls(
      status=payload.get("status") or "completed",
      success=True,
      message=payload.get("message") or "Materialization complete",
      was_stale=bool(payload.get("was_stale")),
      stale_reason=payload.get("stale_reason"),
      tables_materialized=payload.get("tables_materialized") or [],
      total_rows=payload.get("total_rows") or 0,
      execution_time_ms=payload.get("execution_time_ms") or 0,
      operation_id=operation_id,
    )

  @classmethod
  def failure(cls, error: str, operation_id: Optional[str] = None) -> "MaterializationResult":
    return cls(
      status="failed",
      success=False,
      message=error,
      error=error,
      operation_id=operation_id,
    )


@dataclass
class MaterializationStatus:
  graph_id: str
  is_stale: bool
  message: str
  stale_reason: Optional[str] = None
  stale_since: Optional[str] = None
  last_materialized_at: Optional[str] = None
  materialization_count: int = 0
  hours_since_materialization: Optional[float] = None


class MaterializationClient(OperationExecutor):
  """Client for graph materialization."""

  async def materialize(
    self,
    graph_id: str,
    ignore_errors: bool = True,
    rebuild: bool = False,
    force: bool = False,
    max_wait: Optional[float] = None,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> MaterializationResult:
    """
    Materialize a graph from its staging tables.

    Args:
        graph_id: Graph to rebuild
        ignore_errors: Skip rows that fail to load
        rebuild: Drop and recreate the graph database first
        force: Materialize even when the graph is not stale
        max_wait: 0 raises QueuedMaterializationError for a queued rebuild
        timeout: Monitoring timeout for a queued rebuild
        on_progress: Receives progress updates

    Returns:
        MaterializationResult; HTTP and operation failures are reported as
        unsuccessful results
    """
    if on_progress is not None:
      on_progress(OperationProgress(message="Starting graph materialization..."))

    body = {"ignore_errors": ignore_errors, "rebuild": rebuild, "force": force}
    try:
      response = await self.api.post_json(
        f"/v1/graphs/{graph_id}/materialize", json_data=body
      )
    except APIError as e:
      logger.error(f"Failed to materialize graph {graph_id}: {e}")
      return MaterializationResult.failure(f"Failed to materialize graph: {e.message}")

    operation_id = response.get("operation_id")
    if operation_id and response.get("status") in ("queued", "accepted", "pending"):
      self._handle_queued(response, max_wait, QueuedMaterializationError)
      try:
        outcome = await self._await_operation(
          operation_id, timeout=timeout, on_progress=on_progress
        )
      except (OperationError, SSEConnectionError) as e:
        return MaterializationResult.failure(str(e), operation_id)

      if not outcome.success:
        return MaterializationResult.failure(
          outcome.error or "Materialization failed", operation_id
        )
      payload = outcome.result if isinstance(outcome.result, dict) else {}
      result = MaterializationResult.from_payload(payload, operation_id)
    else:
      result = MaterializationResult.from_payload(response)

    if on_progress is not None:
      on_progress(
        OperationProgress(
          message=(
            f"Materialization complete: {len(result.tables_materialized)} tables, "
            f"{result.total_rows:,} rows in {result.execution_time_ms:.2f}ms"
          ),
          progress_percent=100,
        )
      )
    return result

  async def status(self, graph_id: str) -> Optional[MaterializationStatus]:
    """Current staleness of the graph, or None when it cannot be fetched."""
    try:
      data = await self.api.get_json(f"/v1/graphs/{graph_id}/materialize/status")
    except APIError as e:
      logger.error(f"Failed to get materialization status for {graph_id}: {e}")
      return None

    return MaterializationStatus(
      graph_id=data.get("graph_id", graph_id),
      is_stale=bool(data.get("is_stale")),
      message=data.get("message", ""),
      stale_reason=data.get("stale_reason"),
      stale_since=data.get("stale_since"),
      last_materialized_at=data.get("last_materialized_at"),
      materialization_count=data.get("materialization_count") or 0,
      hours_since_materialization=data.get("hours_since_materialization"),
    )
