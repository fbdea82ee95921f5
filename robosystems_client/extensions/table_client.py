"""
Staging table client.

Lists a graph's DuckDB staging tables and ingests them into the graph.
File upload is handled elsewhere; this client only drives ingestion.
"""

from dataclasses import dataclass
from typing import List, Optional

from robosystems_client.exceptions import (
  APIError,
  OperationError,
  QueuedIngestError,
  SSEConnectionError,
)
from robosystems_client.logger import logger
from .base import OperationExecutor
from .operation_client import OperationProgress, ProgressCallback


@dataclass
class TableInfo:
  table_name: str
  row_count: int
  file_count: int = 0
  total_size_bytes: int = 0


@dataclass
class IngestResult:
  success: bool
  operation_id: Optional[str] = None
  message: Optional[str] = None
  error: Optional[str] = None


class TableClient(OperationExecutor):
  """Client for staging tables."""

  async def list_staging_tables(self, graph_id: str) -> List[TableInfo]:
    """List staging tables; an empty list when the lookup fails."""
    try:
      data = await self.api.get_json(f"/v1/graphs/{graph_id}/tables")
    except APIError as e:
      logger.error(f"Failed to list tables for graph {graph_id}: {e}")
      return []

    return [
      TableInfo(
        table_name=table["table_name"],
        row_count=table.get("row_count") or 0,
        file_count=table.get("file_count") or 0,
        total_size_bytes=table.get("total_size_bytes") or 0,
      )
      for table in data.get("tables") or []
    ]

  async def ingest_all_tables(
    self,
    graph_id: str,
    ignore_errors: bool = True,
    rebuild: bool = False,
    wait: bool = False,
    max_wait: Optional[float] = None,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> IngestResult:
    """
    Ingest every staging table into the graph.

    Args:
        graph_id: Target graph
        ignore_errors: Skip rows that fail to load
        rebuild: Rebuild the graph before ingesting
        wait: Follow the ingestion operation to its terminal state
        max_wait: With wait, 0 raises QueuedIngestError instead of waiting
        timeout: Monitoring timeout when waiting
        on_progress: Receives progress updates
    """
    if on_progress is not None:
      on_progress(OperationProgress(message="Starting table ingestion..."))

    try:
      response = await self.api.post_json(
        f"/v1/graphs/{graph_id}/tables/ingest",
        json_data={"ignore_errors": ignore_errors, "rebuild": rebuild},
      )
    except APIError as e:
      logger.error(f"Failed to ingest tables for graph {graph_id}: {e}")
      return IngestResult(success=False, error=f"Failed to ingest tables: {e.message}")

    operation_id = response.get("operation_id")
    message = response.get("message") or "Ingestion started"

    if wait and operation_id:
      self._handle_queued(response, max_wait, QueuedIngestError)
      try:
        outcome = await self._await_operation(
          operation_id, timeout=timeout, on_progress=on_progress
        )
      except (OperationError, SSEConnectionError) as e:
        return IngestResult(success=False, operation_id=operation_id, error=str(e))
      if not outcome.success:
        return IngestResult(success=False, operation_id=operation_id, error=outcome.error)
      if isinstance(outcome.result, dict):
        message = outcome.result.get("message") or "Ingestion completed"
      else:
        message = "Ingestion completed"

    if on_progress is not None:
      on_progress(OperationProgress(message="Table ingestion completed", progress_percent=100))
    return IngestResult(success=True, operation_id=operation_id, message=message)
