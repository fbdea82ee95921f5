"""
Typed pub/sub used inside each SSE client.

Listeners are registered per event kind. Wildcard listeners live in their own
list and see every decoded operation event, which is what diagnostics and
logging hooks want; they are not a special key in the per-kind map.
"""

from typing import Any, Callable, Dict, List, Optional

from robosystems_client.logger import sse_logger
from .events import EventKind, coerce_kind

Listener = Callable[[Any], None]


class EventDispatcher:
  """Delivers payloads to listeners keyed by event kind."""

  def __init__(self):
    self._listeners: Dict[EventKind, List[Listener]] = {}
    self._wildcard: List[Listener] = []

  def on(self, kind: EventKind, listener: Listener) -> None:
    listeners = self._listeners.setdefault(coerce_kind(kind), [])
    if listener not in listeners:
      listeners.append(listener)

  def off(self, kind: EventKind, listener: Listener) -> None:
    listeners = self._listeners.get(coerce_kind(kind))
    if listeners and listener in listeners:
      listeners.remove(listener)

  def add_wildcard(self, listener: Listener) -> None:
    if listener not in self._wildcard:
      self._wildcard.append(listener)

  def remove_wildcard(self, listener: Listener) -> None:
    if listener in self._wildcard:
      self._wildcard.remove(listener)

  def emit(self, kind: EventKind, payload: Any) -> None:
    """Deliver ``payload`` to the listeners registered for ``kind``."""
    # Snapshot so listeners may unsubscribe (or close the client) mid-dispatch
    for listener in list(self._listeners.get(coerce_kind(kind), ())):
      self._call(listener, kind, payload)

  def emit_wildcard(self, payload: Any) -> None:
    for listener in list(self._wildcard):
      self._call(listener, "*", payload)

  def clear(self) -> None:
    self._listeners.clear()
    self._wildcard.clear()

  def listener_count(self, kind: Optional[EventKind] = None) -> int:
    if kind is not None:
      return len(self._listeners.get(coerce_kind(kind), ()))
    return sum(len(v) for v in self._listeners.values()) + len(self._wildcard)

  def _call(self, listener: Listener, kind: EventKind, payload: Any) -> None:
    try:
      listener(payload)
    except Exception:
      # One faulty listener must not starve the others or kill the stream
      sse_logger.error(
        f"Listener for {kind} raised", exc_info=True, extra={"event_type": str(kind)}
      )
