"""
Enhanced copy client with progress monitoring.

Copies data from S3, a URL or an inline DataFrame payload into a graph.
Long-running copies are accepted by the server and followed over the
operation event stream; short ones complete synchronously.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

from robosystems_client.config.constants import COPY_RETRY_MAX_WAIT, DEFAULT_COPY_TIMEOUT
from robosystems_client.exceptions import APIError, QueuedCopyError
from robosystems_client.logger import logger
from .base import OperationExecutor
from .operation_client import OperationProgress, OperationResult, QueueUpdateCallback

CopySourceType = Literal["s3", "url", "dataframe"]
CopyStatus = Literal["completed", "failed", "partial", "accepted"]

RETRYABLE_ERROR_PATTERNS = (
  "timeout",
  "network",
  "connection",
  "temporary",
  "unavailable",
  "rate limit",
  "throttl",
)


@dataclass
class CopyResult:
  """Outcome of a copy operation."""

  status: CopyStatus
  rows_imported: Optional[int] = None
  rows_skipped: Optional[int] = None
  bytes_processed: Optional[int] = None
  execution_time_ms: Optional[float] = None
  warnings: Optional[List[str]] = None
  error: Optional[str] = None
  operation_id: Optional[str] = None
  sse_url: Optional[str] = None
  message: Optional[str] = None


@dataclass
class CopyStatistics:
  total_rows: int
  imported_rows: int
  skipped_rows: int
  bytes_processed: int
  duration: float
  throughput: float  # rows per second


CopyProgressCallback = Callable[[OperationProgress], None]


def is_retryable_error(error: Optional[str]) -> bool:
  """Whether a copy failure message looks transient."""
  if not error:
    return False
  lowered = error.lower()
  return any(pattern in lowered for pattern in RETRYABLE_ERROR_PATTERNS)


class CopyClient(OperationExecutor):
  """Client for copying external data into graphs."""

  async def copy_from_s3(self, graph_id: str, request: Dict[str, Any], **options) -> CopyResult:
    """Copy data from S3 into a graph."""
    return await self._execute_copy(graph_id, request, "s3", **options)

  async def copy_from_url(self, graph_id: str, request: Dict[str, Any], **options) -> CopyResult:
    """Copy data from a URL into a graph."""
    return await self._execute_copy(graph_id, request, "url", **options)

  async def copy_from_dataframe(
    self, graph_id: str, request: Dict[str, Any], **options
  ) -> CopyResult:
    """Copy an inline DataFrame payload into a graph."""
    return await self._execute_copy(graph_id, request, "dataframe", **options)

  async def copy_s3(
    self,
    graph_id: str,
    table_name: str,
    s3_uri: str,
    access_key_id: str,
    secret_access_key: str,
    region: str = "us-east-1",
    file_format: Optional[str] = None,
    ignore_errors: bool = False,
  ) -> CopyResult:
    """Convenience method for a simple S3 copy with default options."""
    request: Dict[str, Any] = {
      "table_name": table_name,
      "source_type": "s3",
      "s3_path": s3_uri,
      "s3_access_key_id": access_key_id,
      "s3_secret_access_key": secret_access_key,
      "s3_region": region,
      "ignore_errors": ignore_errors,
    }
    if file_format:
      request["file_format"] = file_format
    return await self.copy_from_s3(graph_id, request)

  async def _execute_copy(
    self,
    graph_id: str,
    request: Dict[str, Any],
    source_type: CopySourceType,
    on_progress: Optional[CopyProgressCallback] = None,
    on_queue_update: Optional[QueueUpdateCallback] = None,
    on_warning: Optional[Callable[[str], None]] = None,
    timeout: Optional[float] = None,
    max_wait: Optional[float] = None,
  ) -> CopyResult:
    started = self._clock.time()
    body = dict(request)
    body.setdefault("source_type", source_type)

    try:
      response = await self.api.post_json(f"/v1/graphs/{graph_id}/copy", json_data=body)
    except APIError as e:
      logger.error(f"Copy request for graph {graph_id} failed: {e}")
      return CopyResult(
        status="failed",
        error=e.message,
        execution_time_ms=self._elapsed_ms(started),
      )

    if response.get("status") == "accepted" and response.get("operation_id"):
      operation_id = response["operation_id"]
      self._handle_queued(response, max_wait, QueuedCopyError)

      if not response.get("sse_url"):
        return CopyResult(
          status="accepted",
          operation_id=operation_id,
          message=response.get("message"),
        )

      if on_progress is not None:
        on_progress(OperationProgress(message="Copy operation started. Monitoring progress..."))
      return await self._monitor_copy(
        operation_id, started, on_progress, on_queue_update, on_warning, timeout
      )

    return self._build_result(response, self._elapsed_ms(started))

  async def _monitor_copy(
    self,
    operation_id: str,
    started: float,
    on_progress: Optional[CopyProgressCallback] = None,
    on_queue_update: Optional[QueueUpdateCallback] = None,
    on_warning: Optional[Callable[[str], None]] = None,
    timeout: Optional[float] = None,
  ) -> CopyResult:
    warnings: List[str] = []

    def handle_progress(progress: OperationProgress) -> None:
      if on_progress is not None:
        on_progress(progress)
      for warning in (progress.details or {}).get("warnings") or []:
        warnings.append(warning)
        if on_warning is not None:
          on_warning(warning)

    result: OperationResult = await self._await_operation(
      operation_id,
      timeout=timeout or DEFAULT_COPY_TIMEOUT,
      on_progress=handle_progress,
      on_queue_update=on_queue_update,
    )
    elapsed = self._elapsed_ms(started)

    if result.cancelled:
      return CopyResult(
        status="failed",
        error="Copy operation cancelled",
        execution_time_ms=elapsed,
        warnings=warnings or None,
        operation_id=operation_id,
      )
    if not result.success:
      return CopyResult(
        status="failed",
        error=result.error or "Copy operation failed",
        execution_time_ms=elapsed,
        warnings=warnings or None,
        operation_id=operation_id,
      )

    data = result.result if isinstance(result.result, dict) else {}
    return CopyResult(
      status=data.get("status") or "completed",
      rows_imported=data.get("rows_imported"),
      rows_skipped=data.get("rows_skipped"),
      bytes_processed=data.get("bytes_processed"),
      execution_time_ms=elapsed,
      warnings=warnings or data.get("warnings"),
      message=data.get("message"),
      operation_id=operation_id,
    )

  def _build_result(self, response: Dict[str, Any], execution_time_ms: float) -> CopyResult:
    error_details = response.get("error_details")
    return CopyResult(
      status=response.get("status", "completed"),
      rows_imported=response.get("rows_imported") or None,
      rows_skipped=response.get("rows_skipped") or None,
      bytes_processed=response.get("bytes_processed") or None,
      execution_time_ms=response.get("execution_time_ms") or execution_time_ms,
      warnings=response.get("warnings") or None,
      message=response.get("message"),
      error=str(error_details) if error_details else None,
    )

  def _elapsed_ms(self, started: float) -> float:
    return (self._clock.time() - started) * 1000

  def calculate_statistics(self, result: CopyResult) -> Optional[CopyStatistics]:
    """Derive throughput figures; None for failed or empty copies."""
    if result.status == "failed" or not result.rows_imported:
      return None

    imported = result.rows_imported or 0
    skipped = result.rows_skipped or 0
    duration = (result.execution_time_ms or 0) / 1000
    return CopyStatistics(
      total_rows=imported + skipped,
      imported_rows=imported,
      skipped_rows=skipped,
      bytes_processed=result.bytes_processed or 0,
      duration=duration,
      throughput=imported / duration if duration > 0 else 0,
    )

  async def monitor_multiple_copies(
    self, operation_ids: List[str], **options
  ) -> Dict[str, CopyResult]:
    """Monitor several accepted copies concurrently."""
    if not operation_ids:
      return {}
    started = self._clock.time()
    results = await asyncio.gather(
      *(self._monitor_copy(op_id, started, **options) for op_id in operation_ids)
    )
    return dict(zip(operation_ids, results))

  async def batch_copy_from_s3(
    self, graph_id: str, copies: List[Dict[str, Any]]
  ) -> List[CopyResult]:
    """
    Run several S3 copies concurrently.

    Args:
        graph_id: Target graph
        copies: Items of the form {"request": {...}, "options": {...}}
    """
    return list(
      await asyncio.gather(
        *(
          self.copy_from_s3(graph_id, item["request"], **(item.get("options") or {}))
          for item in copies
        )
      )
    )

  async def copy_with_retry(
    self,
    graph_id: str,
    request: Dict[str, Any],
    source_type: CopySourceType,
    max_retries: int = 3,
    **options,
  ) -> CopyResult:
    """
    Copy with retries for transient failures.

    Failed results are retried only when their error looks transient;
    completed and partial results return immediately. Waits double from one
    second up to a 30 second cap.
    """
    on_progress: Optional[CopyProgressCallback] = options.get("on_progress")
    last_error: Optional[Exception] = None

    for attempt in range(1, max_retries + 1):
      try:
        result = await self._execute_copy(graph_id, request, source_type, **options)
      except Exception as e:
        last_error = e
        if attempt == max_retries:
          raise
        message = f"Retrying after error (attempt {attempt}/{max_retries})"
      else:
        if result.status != "failed":
          return result
        if not is_retryable_error(result.error) or attempt == max_retries:
          return result
        message = f"Retrying copy operation (attempt {attempt}/{max_retries})"

      wait = min(1.0 * (2 ** (attempt - 1)), COPY_RETRY_MAX_WAIT)
      logger.warning(f"{message} in {wait}s: graph {graph_id}")
      if on_progress is not None:
        on_progress(OperationProgress(message=f"{message} in {wait}s..."))
      await self._clock.sleep(wait)

    raise last_error or RuntimeError("Copy operation failed after all retries")
