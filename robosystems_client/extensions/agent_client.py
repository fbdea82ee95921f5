"""
Enhanced agent client.

Runs AI agents against a graph, either with automatic agent selection or by
naming a specific agent type. Quick runs answer inline; extended runs are
executed in the background and followed over the operation event stream.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from robosystems_client.exceptions import (
  AgentExecutionError,
  QueuedAgentError,
  UnexpectedResponseError,
)
from robosystems_client.logger import logger
from .base import OperationExecutor
from .operation_client import ProgressCallback

AgentMode = Literal["quick", "standard", "extended", "streaming"]


@dataclass
class AgentResult:
  content: str
  agent_used: str
  mode_used: str = "standard"
  metadata: Optional[Dict[str, Any]] = None
  tokens_used: Optional[Dict[str, int]] = None
  confidence_score: Optional[float] = None
  execution_time: Optional[float] = None
  timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

  @classmethod
  def from_payload(cls, payload: Dict[str, Any]) -> "AgentResult":
    result = cls(
      content=payload.get("content") or "",
      agent_used=payload.get("agent_used") or "unknown",
      mode_used=payload.get("mode_used") or "standard",
      metadata=payload.get("metadata"),
      tokens_used=payload.get("tokens_used"),
      confidence_score=payload.get("confidence_score"),
      execution_time=payload.get("execution_time"),
    )
    if payload.get("timestamp"):
      result.timestamp = payload["timestamp"]
    return result


class AgentClient(OperationExecutor):
  """Client for agent execution."""

  async def execute_query(
    self,
    graph_id: str,
    message: str,
    history: Optional[List[Dict[str, str]]] = None,
    context: Optional[Dict[str, Any]] = None,
    mode: Optional[AgentMode] = None,
    enable_rag: Optional[bool] = None,
    force_extended_analysis: Optional[bool] = None,
    max_wait: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> AgentResult:
    """
    Run an agent query with automatic agent selection.

    Raises:
        QueuedAgentError: Execution was queued and max_wait is 0
        AgentExecutionError: A background execution failed or was cancelled
        UnexpectedResponseError: The server answered with an unknown shape
    """
    body = self._build_body(message, history, context, mode, enable_rag, force_extended_analysis)
    response = await self.api.post_json(f"/v1/graphs/{graph_id}/agent", json_data=body)
    return await self._handle_response(response, max_wait, on_progress)

  async def execute_agent(
    self,
    graph_id: str,
    agent_type: str,
    message: str,
    history: Optional[List[Dict[str, str]]] = None,
    context: Optional[Dict[str, Any]] = None,
    mode: Optional[AgentMode] = None,
    enable_rag: Optional[bool] = None,
    force_extended_analysis: Optional[bool] = None,
    max_wait: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
  ) -> AgentResult:
    """Run a specific agent type ("financial", "research", "rag", ...)."""
    body = self._build_body(message, history, context, mode, enable_rag, force_extended_analysis)
    response = await self.api.post_json(
      f"/v1/graphs/{graph_id}/agent/{agent_type}", json_data=body
    )
    return await self._handle_response(response, max_wait, on_progress)

  @staticmethod
  def _build_body(
    message: str,
    history: Optional[List[Dict[str, str]]],
    context: Optional[Dict[str, Any]],
    mode: Optional[AgentMode],
    enable_rag: Optional[bool],
    force_extended_analysis: Optional[bool],
  ) -> Dict[str, Any]:
    body: Dict[str, Any] = {
      "message": message,
      "history": history,
      "context": context,
      "mode": mode,
      "enable_rag": enable_rag,
      "force_extended_analysis": force_extended_analysis,
    }
    return {k: v for k, v in body.items() if v is not None}

  async def _handle_response(
    self,
    response: Dict[str, Any],
    max_wait: Optional[float],
    on_progress: Optional[ProgressCallback],
  ) -> AgentResult:
    if response.get("content") is not None and response.get("agent_used"):
      return AgentResult.from_payload(response)

    operation_id = response.get("operation_id")
    if not operation_id:
      raise UnexpectedResponseError("agent", response)

    logger.info(
      f"Agent execution queued as operation {operation_id}",
      extra={"operation_id": operation_id, "action": "agent"},
    )
    self._handle_queued(response, max_wait, QueuedAgentError)

    result = await self._await_operation(operation_id, timeout=max_wait, on_progress=on_progress)
    if result.cancelled:
      raise AgentExecutionError("Agent execution cancelled", operation_id)
    if not result.success:
      raise AgentExecutionError(result.error or "Agent execution failed", operation_id)

    payload = result.result if isinstance(result.result, dict) else {}
    return AgentResult.from_payload(payload)

  async def query(
    self, graph_id: str, message: str, context: Optional[Dict[str, Any]] = None
  ) -> AgentResult:
    """Convenience method for simple agent queries with auto-selection."""
    return await self.execute_query(graph_id, message, context=context)

  async def analyze_financials(self, graph_id: str, message: str, **options) -> AgentResult:
    return await self.execute_agent(graph_id, "financial", message, **options)

  async def research(self, graph_id: str, message: str, **options) -> AgentResult:
    return await self.execute_agent(graph_id, "research", message, **options)

  async def rag(self, graph_id: str, message: str, **options) -> AgentResult:
    return await self.execute_agent(graph_id, "rag", message, **options)
