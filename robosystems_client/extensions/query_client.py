"""
Enhanced query client with stream support.

Executes Cypher queries against a graph and normalises the three ways the
server can answer: an immediate JSON result, an NDJSON body streamed in
chunks, or a queued operation whose result arrives over the event stream.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Union

import httpx

from robosystems_client.exceptions import (
  NDJSONParseError,
  OperationConnectionError,
  QueryCancelledError,
  QueryExecutionError,
  QueuedQueryError,
  UnexpectedResponseError,
)
from robosystems_client.logger import logger
from .base import OperationExecutor
from .events import ConnectionSignal, EventType, SSEEvent
from .operation_client import ProgressCallback, QueueUpdateCallback
from .sse_client import SSEClient

QueryMode = Literal["auto", "sync", "async", "stream"]


def _now_iso() -> str:
  return datetime.now(timezone.utc).isoformat()


@dataclass
class QueryResult:
  """Rows and columns of a finished query."""

  data: List[Any]
  columns: List[str]
  row_count: int
  execution_time_ms: float = 0
  graph_id: Optional[str] = None
  timestamp: str = field(default_factory=_now_iso)

  @classmethod
  def from_payload(cls, payload: Dict[str, Any], graph_id: Optional[str] = None) -> "QueryResult":
    data = payload.get("data") or []
    return cls(
      data=data,
      columns=payload.get("columns") or [],
      row_count=payload.get("row_count") or len(data),
      execution_time_ms=payload.get("execution_time_ms") or 0,
      graph_id=payload.get("graph_id") or graph_id,
      timestamp=payload.get("timestamp") or _now_iso(),
    )


def _is_ndjson(response: httpx.Response) -> bool:
  content_type = response.headers.get("content-type", "")
  return (
    "application/x-ndjson" in content_type
    or response.headers.get("x-stream-format") == "ndjson"
  )


class QueryClient(OperationExecutor):
  """Client for executing graph queries."""

  _stream_client: Optional[SSEClient] = None

  async def execute_query(
    self,
    graph_id: str,
    query: str,
    parameters: Optional[Dict[str, Any]] = None,
    mode: QueryMode = "auto",
    test_mode: bool = False,
    max_wait: Optional[float] = None,
    chunk_size: int = 100,
    on_queue_update: Optional[QueueUpdateCallback] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> QueryResult:
    """
    Execute a Cypher query and return its complete result.

    Args:
        graph_id: Target graph
        query: Cypher query text
        parameters: Query parameters
        mode: Execution strategy hint for the server
        test_mode: Ask the server to run the query in test mode
        max_wait: Seconds to wait for a queued query; 0 raises QueuedQueryError
        chunk_size: Rows per NDJSON chunk when streaming
        on_queue_update: Called with (position, estimated_wait_seconds)
        on_progress: Called with progress updates while the query runs

    Returns:
        QueryResult

    Raises:
        QueuedQueryError: The query was queued and max_wait is 0
        QueryExecutionError: A queued query failed
        QueryCancelledError: A queued query was cancelled
        NDJSONParseError: One or more NDJSON lines could not be parsed
        UnexpectedResponseError: The server answered with an unknown shape
    """
    response = await self._start(graph_id, query, parameters, mode, test_mode, chunk_size)
    if isinstance(response, QueryResult):
      return response

    operation_id = self._queued_operation(response, max_wait, on_queue_update)
    result = await self._await_operation(
      operation_id,
      timeout=max_wait,
      on_progress=on_progress,
      on_queue_update=on_queue_update,
    )

    if result.cancelled:
      raise QueryCancelledError(operation_id)
    if not result.success:
      raise QueryExecutionError(result.error or "Query failed", operation_id)

    payload = result.result if isinstance(result.result, dict) else {}
    return QueryResult.from_payload(payload)

  async def query(
    self, graph_id: str, cypher: str, parameters: Optional[Dict[str, Any]] = None
  ) -> QueryResult:
    """Convenience method for simple queries."""
    return await self.execute_query(graph_id, cypher, parameters, mode="auto")

  async def stream_query(
    self,
    graph_id: str,
    cypher: str,
    parameters: Optional[Dict[str, Any]] = None,
    chunk_size: int = 1000,
    max_wait: Optional[float] = None,
    on_queue_update: Optional[QueueUpdateCallback] = None,
  ) -> AsyncIterator[Any]:
    """
    Yield result rows as they become available.

    A synchronous or NDJSON answer is yielded row by row. A queued query is
    followed over its event stream: rows from data_chunk events first, then
    any rows carried by the completion payload.
    """
    response = await self._start(graph_id, cypher, parameters, "stream", False, chunk_size)
    if isinstance(response, QueryResult):
      for row in response.data:
        yield row
      return

    operation_id = self._queued_operation(response, max_wait, on_queue_update)
    async for row in self._stream_operation(operation_id, on_queue_update):
      yield row

  async def close(self) -> None:
    """Cancel any active stream."""
    if self._stream_client is not None:
      self._stream_client.close()
      self._stream_client = None

  # --------------------------------------------------------------------------
  # Internals
  # --------------------------------------------------------------------------

  async def _start(
    self,
    graph_id: str,
    query: str,
    parameters: Optional[Dict[str, Any]],
    mode: QueryMode,
    test_mode: bool,
    chunk_size: int,
  ) -> Union[QueryResult, Dict[str, Any]]:
    body: Dict[str, Any] = {"query": query}
    if parameters:
      body["parameters"] = parameters

    params: Dict[str, Any] = {"mode": mode}
    if test_mode:
      params["test_mode"] = "true"
    if mode == "stream":
      params["chunk_size"] = chunk_size

    async with self.api.stream(
      "POST", f"/v1/graphs/{graph_id}/query", json_data=body, params=params
    ) as response:
      if _is_ndjson(response):
        return await self._parse_ndjson(response, graph_id)

      await response.aread()
      data = response.json() if response.content else {}

    if isinstance(data, dict):
      if data.get("data") is not None and data.get("columns") is not None:
        return QueryResult.from_payload(data, graph_id)
      if data.get("status") == "queued" and data.get("operation_id"):
        return data

    raise UnexpectedResponseError("query", data)

  def _queued_operation(
    self,
    response: Dict[str, Any],
    max_wait: Optional[float],
    on_queue_update: Optional[QueueUpdateCallback],
  ) -> str:
    operation_id = response["operation_id"]
    logger.info(
      f"Query queued as operation {operation_id} "
      f"(position {response.get('queue_position')})",
      extra={"operation_id": operation_id, "action": "query"},
    )
    if on_queue_update is not None:
      on_queue_update(
        response.get("queue_position"), response.get("estimated_wait_seconds") or 0
      )
    self._handle_queued(response, max_wait, QueuedQueryError)
    return operation_id

  async def _parse_ndjson(self, response: httpx.Response, graph_id: str) -> QueryResult:
    rows: List[Any] = []
    columns: Optional[List[str]] = None
    execution_time_ms: float = 0
    failures = []

    line_no = 0
    async for line in response.aiter_lines():
      line_no += 1
      if not line.strip():
        continue
      try:
        chunk = json.loads(line)
        if not isinstance(chunk, dict):
          raise ValueError(f"expected a JSON object, got {type(chunk).__name__}")
      except ValueError as e:
        failures.append((line_no, str(e), line[:100]))
        continue

      if columns is None and chunk.get("columns") is not None:
        columns = chunk["columns"]

      # NDJSON chunks carry "rows"; plain JSON bodies use "data"
      if chunk.get("rows"):
        rows.extend(chunk["rows"])
      elif chunk.get("data"):
        rows.extend(chunk["data"])

      if chunk.get("execution_time_ms"):
        execution_time_ms = max(execution_time_ms, chunk["execution_time_ms"])

    if failures:
      logger.error(f"Failed to parse {len(failures)} NDJSON line(s) from query on {graph_id}")
      raise NDJSONParseError(failures)

    return QueryResult(
      data=rows,
      columns=columns or [],
      row_count=len(rows),
      execution_time_ms=execution_time_ms,
      graph_id=graph_id,
    )

  async def _stream_operation(
    self, operation_id: str, on_queue_update: Optional[QueueUpdateCallback]
  ) -> AsyncIterator[Any]:
    queue: asyncio.Queue = asyncio.Queue()

    def on_chunk(event: SSEEvent) -> None:
      queue.put_nowait(("rows", event.payload.items))

    def on_queue(event: SSEEvent) -> None:
      if on_queue_update is not None:
        payload = event.payload
        on_queue_update(payload.current_position, payload.estimated_wait_seconds or 0)

    def on_completed(event: SSEEvent) -> None:
      result = event.data.get("result")
      if isinstance(result, dict) and result.get("data"):
        queue.put_nowait(("rows", result["data"]))
      queue.put_nowait(("done", None))

    def on_error(event: SSEEvent) -> None:
      queue.put_nowait(("error", QueryExecutionError(event.payload.error_message, operation_id)))

    def on_cancelled(event: SSEEvent) -> None:
      queue.put_nowait(("error", QueryCancelledError(operation_id)))

    def on_closed(info: Dict[str, Any]) -> None:
      queue.put_nowait(
        (
          "error",
          OperationConnectionError(
            f"Stream for query {operation_id} closed ({info.get('reason')})",
            operation_id,
          ),
        )
      )

    client = self.operations.create_sse_client()
    client.on(EventType.DATA_CHUNK, on_chunk)
    client.on(EventType.QUEUE_UPDATE, on_queue)
    client.on(EventType.OPERATION_COMPLETED, on_completed)
    client.on(EventType.OPERATION_ERROR, on_error)
    client.on(EventType.OPERATION_CANCELLED, on_cancelled)
    client.on(ConnectionSignal.CLOSED, on_closed)

    self._stream_client = client
    try:
      await client.connect(operation_id)
      while True:
        kind, value = await queue.get()
        if kind == "rows":
          for row in value:
            yield row
        elif kind == "done":
          return
        else:
          raise value
    finally:
      client.close()
      if self._stream_client is client:
        self._stream_client = None
