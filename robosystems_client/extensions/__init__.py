"""
RoboSystems SDK extensions for real-time operation monitoring.

This package layers Server-Sent Events monitoring over the RoboSystems API
so long-running operations (queries, copies, agent runs, materialization,
graph creation, table ingestion) can be followed to completion.

Key Components:
- SSEClient: One resilient event stream per operation, with resume
- OperationClient: Terminal results, progress callbacks, connection registry
- Executors: Query, Copy, Agent, Materialization, Graph and Table clients
- RoboSystemsExtensions: Builds and owns all of the above

Usage Example:
    from robosystems_client.extensions import RoboSystemsExtensions, SDKExtensionsConfig

    config = SDKExtensionsConfig.for_environment("production").with_jwt(token)
    async with RoboSystemsExtensions(config) as ext:
        result = await ext.monitor_operation(operation_id, on_progress=print)
"""

from .agent_client import AgentClient, AgentResult
from .api import APIClient
from .clock import AsyncioClock, Clock
from .config import SDKExtensionsConfig, is_valid_jwt
from .copy_client import CopyClient, CopyResult, CopyStatistics, is_retryable_error
from .dispatcher import EventDispatcher
from .events import ConnectionSignal, EventType, SSEEvent
from .extensions import RoboSystemsExtensions
from .graph_client import GraphClient, GraphInfo, GraphMetadataInput, InitialEntityInput
from .materialization_client import (
  MaterializationClient,
  MaterializationResult,
  MaterializationStatus,
)
from .operation_client import (
  OperationClient,
  OperationProgress,
  OperationResult,
  QueueUpdate,
)
from .query_client import QueryClient, QueryResult
from .sse_client import SSEClient
from .table_client import IngestResult, TableClient, TableInfo
from .transport import HttpxSSETransport, ReadyState, StreamTransport

__all__ = [
  # Context
  "RoboSystemsExtensions",
  "SDKExtensionsConfig",
  "is_valid_jwt",
  # Streaming
  "SSEClient",
  "SSEEvent",
  "EventType",
  "ConnectionSignal",
  "EventDispatcher",
  "StreamTransport",
  "HttpxSSETransport",
  "ReadyState",
  "Clock",
  "AsyncioClock",
  "APIClient",
  # Operations
  "OperationClient",
  "OperationResult",
  "OperationProgress",
  "QueueUpdate",
  # Executors
  "QueryClient",
  "QueryResult",
  "CopyClient",
  "CopyResult",
  "CopyStatistics",
  "is_retryable_error",
  "AgentClient",
  "AgentResult",
  "MaterializationClient",
  "MaterializationResult",
  "MaterializationStatus",
  "GraphClient",
  "GraphInfo",
  "GraphMetadataInput",
  "InitialEntityInput",
  "TableClient",
  "TableInfo",
  "IngestResult",
]
