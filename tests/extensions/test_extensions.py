"""Tests for the RoboSystemsExtensions context."""

import asyncio

import httpx
import pytest

from robosystems_client.extensions import (
  OperationClient,
  QueryClient,
  RoboSystemsExtensions,
  SSEClient,
)
from robosystems_client.exceptions import OperationConnectionError
from tests.conftest import flush


class TestConstruction:
  def test_components_share_one_monitor(self, extensions):
    assert isinstance(extensions.operations, OperationClient)
    assert isinstance(extensions.query, QueryClient)
    for executor in (
      extensions.query,
      extensions.copy,
      extensions.agent,
      extensions.materialization,
      extensions.graphs,
      extensions.tables,
    ):
      assert executor.operations is extensions.operations
      assert executor.api is extensions.api

  def test_create_sse_client(self, extensions, transport, clock):
    client = extensions.create_sse_client()

    assert isinstance(client, SSEClient)
    assert client._transport is transport
    assert client._clock is clock


class TestMonitorOperation:
  @pytest.mark.asyncio
  async def test_delegates_to_operation_client(self, extensions, transport):
    progress = []

    task = asyncio.ensure_future(
      extensions.monitor_operation("op_7", on_progress=progress.append)
    )
    await flush()
    transport.last.send("operation_progress", {"message": "Halfway", "progress_percent": 50})
    transport.last.send("operation_completed", {"result": {"rows": 3}})
    result = await task

    assert result.success
    assert result.result == {"rows": 3}
    assert [p.message for p in progress] == ["Halfway"]
    assert transport.last.url.endswith("/v1/operations/op_7/stream")


class TestClose:
  @pytest.mark.asyncio
  async def test_close_tears_down_streams_and_transport(self, extensions, transport, clock):
    task = asyncio.ensure_future(extensions.monitor_operation("op_open"))
    await flush()
    assert "op_open" in extensions.operations.active_operations

    await extensions.close()
    await flush()

    with pytest.raises(OperationConnectionError):
      await task
    assert transport.closed
    assert transport.last.exited
    assert list(extensions.operations.active_operations) == []
    assert clock.pending() == 0

  @pytest.mark.asyncio
  async def test_close_is_idempotent(self, extensions, transport):
    await extensions.close()
    transport.closed = False

    await extensions.close()

    assert transport.closed is False

  @pytest.mark.asyncio
  async def test_async_context_manager(self, config, transport, router, clock):
    async with RoboSystemsExtensions(
      config,
      transport=transport,
      http_transport=httpx.MockTransport(router),
      clock=clock,
    ) as ext:
      assert ext.config is config

    assert transport.closed
