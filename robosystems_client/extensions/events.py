"""
Event model for operation streams.

Defines the fixed wire enumeration of event kinds, the per-kind payload
models, and the decode step that turns a raw Server-Sent Event into a typed
SSEEvent. Payloads are validated with pydantic; anything that does not match
its kind's model is rejected here so the stream client can report it on the
parse-error channel instead of handing listeners malformed data.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError


class EventType(str, Enum):
  """Event kinds emitted on /v1/operations/{operation_id}/stream."""

  OPERATION_STARTED = "operation_started"
  OPERATION_PROGRESS = "operation_progress"
  OPERATION_COMPLETED = "operation_completed"
  OPERATION_ERROR = "operation_error"
  OPERATION_CANCELLED = "operation_cancelled"
  DATA_CHUNK = "data_chunk"
  METADATA = "metadata"
  QUEUE_UPDATE = "queue_update"
  HEARTBEAT = "heartbeat"

  @property
  def is_terminal(self) -> bool:
    return self in TERMINAL_EVENTS


TERMINAL_EVENTS = frozenset(
  {
    EventType.OPERATION_COMPLETED,
    EventType.OPERATION_ERROR,
    EventType.OPERATION_CANCELLED,
  }
)


class ConnectionSignal(str, Enum):
  """Client-side lifecycle signals, never sent by the server."""

  CONNECTED = "connected"
  RECONNECTING = "reconnecting"
  MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
  PARSE_ERROR = "parse_error"
  CLOSED = "closed"


EventKind = Union[EventType, ConnectionSignal, str]


# ============================================================================
# Payload models
# ============================================================================


class EventPayload(BaseModel):
  """
  Fields the server attaches to every event, plus whatever else it sent.

  Envelope fields are not typed: nothing reads them from the payload, and a
  server that sends a numeric id or an epoch timestamp must not cause a
  terminal event to be rejected.
  """

  model_config = ConfigDict(extra="allow")

  operation_id: Optional[Any] = None
  timestamp: Optional[Any] = None
  sequence_number: Optional[Any] = None


class OperationStartedPayload(EventPayload):
  message: Optional[str] = None
  operation_type: Optional[str] = None


class OperationProgressPayload(EventPayload):
  message: Optional[str] = None
  status: Optional[str] = None
  progress_percent: Optional[float] = None
  progress: Optional[float] = None
  progress_percentage: Optional[float] = None
  warnings: Optional[List[str]] = None

  @property
  def display_message(self) -> str:
    return self.message or self.status or "Processing..."

  @property
  def percent(self) -> Optional[float]:
    for value in (self.progress_percent, self.progress, self.progress_percentage):
      if value is not None:
        return value
    return None


class OperationCompletedPayload(EventPayload):
  result: Optional[Any] = None
  metadata: Optional[Any] = None
  duration_seconds: Optional[Any] = None


class OperationErrorPayload(EventPayload):
  message: Optional[Any] = None
  error: Optional[Any] = None
  metadata: Optional[Any] = None

  @property
  def error_message(self) -> str:
    if self.message:
      return str(self.message)
    if self.error:
      return str(self.error)
    return "Operation failed"


class OperationCancelledPayload(EventPayload):
  message: Optional[Any] = None
  reason: Optional[Any] = None


class DataChunkPayload(EventPayload):
  rows: Optional[List[Any]] = None
  data: Optional[List[Any]] = None

  @property
  def items(self) -> List[Any]:
    if self.rows is not None:
      return self.rows
    return self.data or []


class MetadataPayload(EventPayload):
  columns: Optional[List[str]] = None


class QueueUpdatePayload(EventPayload):
  position: Optional[int] = None
  queue_position: Optional[int] = None
  estimated_wait_seconds: Optional[float] = None

  @property
  def current_position(self) -> Optional[int]:
    return self.position if self.position is not None else self.queue_position


class HeartbeatPayload(EventPayload):
  pass


PAYLOAD_MODELS: Dict[EventType, Type[EventPayload]] = {
  EventType.OPERATION_STARTED: OperationStartedPayload,
  EventType.OPERATION_PROGRESS: OperationProgressPayload,
  EventType.OPERATION_COMPLETED: OperationCompletedPayload,
  EventType.OPERATION_ERROR: OperationErrorPayload,
  EventType.OPERATION_CANCELLED: OperationCancelledPayload,
  EventType.DATA_CHUNK: DataChunkPayload,
  EventType.METADATA: MetadataPayload,
  EventType.QUEUE_UPDATE: QueueUpdatePayload,
  EventType.HEARTBEAT: HeartbeatPayload,
}


# ============================================================================
# Decoded event
# ============================================================================


@dataclass
class RawEvent:
  """One message as read off the transport, before decoding."""

  event: str
  data: str
  id: Optional[str] = None


@dataclass
class SSEEvent:
  """
  A decoded stream event as delivered to listeners.

  ``data`` is the JSON object exactly as received; ``payload`` is the same
  data validated against the kind's model.
  """

  event_type: EventKind
  payload: EventPayload
  data: Dict[str, Any]
  sequence_number: Optional[int] = None
  id: Optional[str] = None
  timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

  @property
  def is_terminal(self) -> bool:
    return isinstance(self.event_type, EventType) and self.event_type.is_terminal


class EventDecodeError(ValueError):
  """A raw event could not be decoded into its kind's payload."""

  def __init__(self, message: str, raw: RawEvent):
    super().__init__(message)
    self.raw = raw


class ServerControlEvent(str, Enum):
  """Stream housekeeping events the server sends outside the operation's own events."""

  CONNECTED = "connected"
  KEEPALIVE = "keepalive"
  STREAM_END = "stream_end"


SERVER_CONTROL_EVENTS = frozenset(e.value for e in ServerControlEvent)


def coerce_kind(kind: EventKind) -> EventKind:
  """Map a listener key onto EventType/ConnectionSignal where one exists."""
  if isinstance(kind, (EventType, ConnectionSignal)):
    return kind
  for enum_cls in (EventType, ConnectionSignal):
    try:
      return enum_cls(kind)
    except ValueError:
      continue
  return kind


def wire_kind(name: str) -> Union[EventType, str]:
  """
  Map an event name read off the wire onto EventType.

  Accepts both "operation_progress" and the enum-repr form
  "EventType.OPERATION_PROGRESS" some server versions emit. Names that are
  not operation events are returned unchanged.
  """
  if name.startswith("EventType."):
    member = EventType.__members__.get(name.split(".", 1)[1])
    if member is not None:
      return member
  try:
    return EventType(name)
  except ValueError:
    return name


def _parse_sequence(raw: RawEvent, data: Dict[str, Any]) -> Optional[int]:
  # The SSE id field wins; the server otherwise embeds sequence_number in data
  if raw.id:
    try:
      return int(raw.id)
    except ValueError:
      pass
  value = data.get("sequence_number")
  if isinstance(value, int) and not isinstance(value, bool):
    return value
  return None


def decode_event(raw: RawEvent) -> SSEEvent:
  """
  Decode a raw event into a typed SSEEvent.

  Raises:
      EventDecodeError: the data is not a JSON object or does not match the
          payload model for its kind
  """
  try:
    data = json.loads(raw.data) if raw.data else {}
  except json.JSONDecodeError as e:
    raise EventDecodeError(f"Invalid JSON in event data: {e}", raw) from e

  if not isinstance(data, dict):
    raise EventDecodeError(
      f"Event data must be a JSON object, got {type(data).__name__}", raw
    )

  kind = wire_kind(raw.event or "message")
  model = PAYLOAD_MODELS.get(kind, EventPayload) if isinstance(kind, EventType) else EventPayload

  try:
    payload = model.model_validate(data)
  except ValidationError as e:
    raise EventDecodeError(f"Invalid {kind} payload: {e}", raw) from e

  return SSEEvent(
    event_type=kind,
    payload=payload,
    data=data,
    sequence_number=_parse_sequence(raw, data),
    id=raw.id,
  )
