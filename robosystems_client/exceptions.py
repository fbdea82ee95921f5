"""
Custom Exception Types for the RoboSystems client.

This module provides the exception hierarchy for the client extensions. Each
exception carries a machine-readable error code and a details dict so callers
can branch on structured data instead of parsing messages.

Operation-layer outcomes (an operation failed or was cancelled on the server)
are NOT exceptions: they are delivered as OperationResult values. The
exceptions below cover the genuinely exceptional paths: HTTP failures on the
initiating request, stream connection failures that exhausted their retry
budget, monitoring timeouts, and queued responses the caller chose not to
wait for.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone


class RoboSystemsClientError(Exception):
  """
  Base exception for all RoboSystems client errors.

  Attributes:
      message: Human-readable error message
      error_code: Application-specific error code for categorization
      details: Additional error context and metadata
      timestamp: When the error occurred
  """

  def __init__(
    self,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
  ):
    super().__init__(message)
    self.message = message
    self.error_code = error_code or self.__class__.__name__
    self.details = details or {}
    self.timestamp = datetime.now(timezone.utc).isoformat()

  def to_dict(self) -> Dict[str, Any]:
    """Convert exception to dictionary for logging or reporting."""
    return {
      "error": self.error_code,
      "message": self.message,
      "details": self.details,
      "timestamp": self.timestamp,
    }


# ============================================================================
# HTTP API Exceptions
# ============================================================================


class APIError(RoboSystemsClientError):
  """Base exception for HTTP API errors."""

  def __init__(
    self,
    message: str,
    status_code: Optional[int] = None,
    response_data: Optional[Dict[str, Any]] = None,
  ):
    details: Dict[str, Any] = {}
    if status_code is not None:
      details["status_code"] = status_code
    super().__init__(message, error_code="API_ERROR", details=details)
    self.status_code = status_code
    self.response_data = response_data


class APITransientError(APIError):
  """
  Transient errors that can be retried.

  Examples: Network timeouts, 503 Service Unavailable, 502 Bad Gateway
  """

  pass


class APITimeoutError(APITransientError):
  """Request timeout errors."""

  pass


class APIClientError(APIError):
  """
  Client errors that should not be retried.

  Examples: 400 Bad Request, 401 Unauthorized, 404 Not Found
  """

  pass


class APIServerError(APIError):
  """
  Server errors that might be retriable.

  Examples: 500 Internal Server Error
  """

  pass


class UnexpectedResponseError(RoboSystemsClientError):
  """Raised when an endpoint answers with a shape the client does not recognise."""

  def __init__(self, endpoint: str, response_data: Any = None):
    super().__init__(
      f"Unexpected response format from {endpoint} endpoint",
      error_code="UNEXPECTED_RESPONSE",
      details={"endpoint": endpoint},
    )
    self.response_data = response_data


# ============================================================================
# Stream Connection Exceptions
# ============================================================================


class SSEConnectionError(RoboSystemsClientError):
  """Raised when an event stream cannot be opened or is lost for good."""

  def __init__(self, message: str, operation_id: Optional[str] = None, **kwargs):
    details: Dict[str, Any] = {}
    if operation_id:
      details["operation_id"] = operation_id
    details.update(kwargs)
    super().__init__(message, error_code="SSE_CONNECTION_ERROR", details=details)
    self.operation_id = operation_id


class SSEConnectionTimeoutError(SSEConnectionError):
  """Raised when the stream does not signal open within the connect timeout."""

  def __init__(self, operation_id: Optional[str] = None, timeout: float = 0.0):
    super().__init__("Connection timeout", operation_id=operation_id, timeout=timeout)
    self.error_code = "SSE_CONNECTION_TIMEOUT"


class SSEMaxRetriesExceededError(SSEConnectionError):
  """Raised when the reconnection budget is exhausted."""

  def __init__(self, operation_id: Optional[str] = None, attempts: int = 0):
    super().__init__(
      f"Max reconnection attempts exceeded ({attempts})",
      operation_id=operation_id,
      attempts=attempts,
    )
    self.error_code = "SSE_MAX_RETRIES_EXCEEDED"


# ============================================================================
# Operation Monitoring Exceptions
# ============================================================================


class OperationError(RoboSystemsClientError):
  """Base exception for operation monitoring failures."""

  def __init__(
    self,
    message: str,
    operation_id: Optional[str] = None,
    error_code: Optional[str] = None,
    **kwargs,
  ):
    details: Dict[str, Any] = {}
    if operation_id:
      details["operation_id"] = operation_id
    details.update(kwargs)
    super().__init__(message, error_code=error_code or "OPERATION_ERROR", details=details)
    self.operation_id = operation_id


class OperationTimeoutError(OperationError):
  """
  Raised when the local monitoring watchdog expires.

  This only means the client stopped observing. The server-side operation
  is not cancelled.
  """

  def __init__(self, operation_id: str, timeout: float):
    super().__init__(
      f"Operation timeout after {timeout}s",
      operation_id=operation_id,
      error_code="OPERATION_TIMEOUT",
      timeout=timeout,
    )
    self.timeout = timeout


class OperationConnectionError(OperationError):
  """Raised when the stream for a monitored operation is lost for good."""

  def __init__(self, message: str, operation_id: Optional[str] = None):
    super().__init__(
      message, operation_id=operation_id, error_code="OPERATION_CONNECTION_LOST"
    )


class OperationFailedError(OperationError):
  """Raised by wait-style helpers when an operation resolves unsuccessfully."""

  def __init__(self, message: str, operation_id: Optional[str] = None):
    super().__init__(message, operation_id=operation_id, error_code="OPERATION_FAILED")


# ============================================================================
# Queued Response Exceptions
# ============================================================================


class QueuedOperationError(RoboSystemsClientError):
  """
  Raised when the server queued the work and the caller chose not to wait.

  Attributes:
      queue_info: The server response, verbatim
  """

  default_message = "Operation was queued"

  def __init__(self, queue_info: Dict[str, Any]):
    super().__init__(
      self.default_message,
      error_code="OPERATION_QUEUED",
      details={
        "operation_id": queue_info.get("operation_id"),
        "queue_position": queue_info.get("queue_position"),
        "estimated_wait_seconds": queue_info.get("estimated_wait_seconds"),
      },
    )
    self.queue_info = queue_info

  @property
  def operation_id(self) -> Optional[str]:
    return self.queue_info.get("operation_id")


class QueuedQueryError(QueuedOperationError):
  """Raised when a query is queued and max_wait is 0."""

  default_message = "Query was queued"


class QueuedAgentError(QueuedOperationError):
  """Raised when agent execution is queued and max_wait is 0."""

  default_message = "Agent execution was queued"


class QueuedCopyError(QueuedOperationError):
  """Raised when a copy is accepted for background execution and max_wait is 0."""

  default_message = "Copy operation was queued"


class QueuedMaterializationError(QueuedOperationError):
  """Raised when materialization is queued and max_wait is 0."""

  default_message = "Materialization was queued"


class QueuedIngestError(QueuedOperationError):
  """Raised when table ingestion is queued and max_wait is 0."""

  default_message = "Table ingestion was queued"


# ============================================================================
# Executor Exceptions
# ============================================================================


class QueryExecutionError(RoboSystemsClientError):
  """Raised when a queued query finishes unsuccessfully."""

  def __init__(self, message: str, operation_id: Optional[str] = None):
    super().__init__(
      message,
      error_code="QUERY_EXECUTION_FAILED",
      details={"operation_id": operation_id} if operation_id else {},
    )
    self.operation_id = operation_id


class QueryCancelledError(QueryExecutionError):
  """Raised when a queued query is cancelled."""

  def __init__(self, operation_id: Optional[str] = None):
    super().__init__("Query cancelled", operation_id=operation_id)
    self.error_code = "QUERY_CANCELLED"


class NDJSONParseError(RoboSystemsClientError):
  """
  Raised after an NDJSON body was fully read and one or more lines failed to parse.

  Attributes:
      failures: (line_number, error message, truncated line) for each bad line
  """

  def __init__(self, failures: List[tuple]):
    first = failures[0]
    super().__init__(
      f"Failed to parse {len(failures)} NDJSON line(s); "
      f"first at line {first[0]}: {first[1]}",
      error_code="NDJSON_PARSE_ERROR",
      details={"failed_lines": [f[0] for f in failures]},
    )
    self.failures = failures


class AgentExecutionError(RoboSystemsClientError):
  """Raised when a queued agent execution finishes unsuccessfully."""

  def __init__(self, message: str, operation_id: Optional[str] = None):
    super().__init__(
      message,
      error_code="AGENT_EXECUTION_FAILED",
      details={"operation_id": operation_id} if operation_id else {},
    )
    self.operation_id = operation_id


class GraphCreationError(RoboSystemsClientError):
  """Raised when graph creation fails on the server."""

  def __init__(self, message: str, operation_id: Optional[str] = None):
    super().__init__(
      message,
      error_code="GRAPH_CREATION_FAILED",
      details={"operation_id": operation_id} if operation_id else {},
    )
    self.operation_id = operation_id


class GraphCreationTimeoutError(GraphCreationError):
  """Raised when graph creation does not finish within the allotted time."""

  def __init__(self, timeout: float, operation_id: Optional[str] = None):
    super().__init__(
      f"Graph creation timed out after {timeout}s", operation_id=operation_id
    )
    self.error_code = "GRAPH_CREATION_TIMEOUT"
    self.timeout = timeout


class GraphNotFoundError(RoboSystemsClientError):
  """Raised when a requested graph does not exist."""

  def __init__(self, graph_id: str):
    super().__init__(
      f"Graph not found: {graph_id}",
      error_code="GRAPH_NOT_FOUND",
      details={"graph_id": graph_id},
    )
