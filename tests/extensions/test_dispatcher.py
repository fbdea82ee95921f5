"""Tests for the typed event dispatcher."""

from unittest.mock import Mock

from robosystems_client.extensions.dispatcher import EventDispatcher
from robosystems_client.extensions.events import ConnectionSignal, EventType


class TestEventDispatcher:
  """Test listener registration and delivery."""

  def test_emit_to_registered_listeners(self):
    dispatcher = EventDispatcher()
    first, second = Mock(), Mock()
    dispatcher.on(EventType.OPERATION_PROGRESS, first)
    dispatcher.on(EventType.OPERATION_PROGRESS, second)

    dispatcher.emit(EventType.OPERATION_PROGRESS, {"message": "hi"})

    first.assert_called_once_with({"message": "hi"})
    second.assert_called_once_with({"message": "hi"})

  def test_emit_only_reaches_matching_kind(self):
    dispatcher = EventDispatcher()
    listener = Mock()
    dispatcher.on(EventType.OPERATION_COMPLETED, listener)

    dispatcher.emit(EventType.OPERATION_PROGRESS, {})

    listener.assert_not_called()

  def test_string_and_enum_keys_are_equivalent(self):
    dispatcher = EventDispatcher()
    listener = Mock()
    dispatcher.on("queue_update", listener)

    dispatcher.emit(EventType.QUEUE_UPDATE, {})
    dispatcher.emit("queue_update", {})

    assert listener.call_count == 2
    assert dispatcher.listener_count(EventType.QUEUE_UPDATE) == 1

  def test_duplicate_registration_ignored(self):
    dispatcher = EventDispatcher()
    listener = Mock()
    dispatcher.on(ConnectionSignal.CLOSED, listener)
    dispatcher.on(ConnectionSignal.CLOSED, listener)

    dispatcher.emit(ConnectionSignal.CLOSED, {})

    listener.assert_called_once()

  def test_off_removes_listener(self):
    dispatcher = EventDispatcher()
    listener = Mock()
    dispatcher.on(EventType.HEARTBEAT, listener)
    dispatcher.off(EventType.HEARTBEAT, listener)
    dispatcher.off(EventType.HEARTBEAT, listener)

    dispatcher.emit(EventType.HEARTBEAT, {})

    listener.assert_not_called()

  def test_wildcard_is_separate_from_kind_listeners(self):
    dispatcher = EventDispatcher()
    wildcard = Mock()
    dispatcher.add_wildcard(wildcard)

    dispatcher.emit(EventType.OPERATION_STARTED, {})
    wildcard.assert_not_called()

    dispatcher.emit_wildcard("event")
    wildcard.assert_called_once_with("event")

    dispatcher.remove_wildcard(wildcard)
    dispatcher.emit_wildcard("event")
    wildcard.assert_called_once()

  def test_raising_listener_does_not_stop_delivery(self):
    dispatcher = EventDispatcher()
    after = Mock()
    dispatcher.on(EventType.OPERATION_ERROR, Mock(side_effect=ValueError("bad")))
    dispatcher.on(EventType.OPERATION_ERROR, after)

    dispatcher.emit(EventType.OPERATION_ERROR, {})

    after.assert_called_once()

  def test_listener_may_unsubscribe_during_dispatch(self):
    dispatcher = EventDispatcher()
    calls = []

    def once(payload):
      calls.append("once")
      dispatcher.off(EventType.METADATA, once)

    other = Mock()
    dispatcher.on(EventType.METADATA, once)
    dispatcher.on(EventType.METADATA, other)

    dispatcher.emit(EventType.METADATA, {})
    dispatcher.emit(EventType.METADATA, {})

    assert calls == ["once"]
    assert other.call_count == 2

  def test_clear_and_listener_count(self):
    dispatcher = EventDispatcher()
    dispatcher.on(EventType.OPERATION_STARTED, Mock())
    dispatcher.on(EventType.OPERATION_PROGRESS, Mock())
    dispatcher.add_wildcard(Mock())

    assert dispatcher.listener_count() == 3

    dispatcher.clear()

    assert dispatcher.listener_count() == 0
