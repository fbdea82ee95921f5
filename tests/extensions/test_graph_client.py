"""Tests for graph creation and its polling fallback."""

import asyncio
import json

import pytest

from robosystems_client.exceptions import (
  GraphCreationError,
  GraphCreationTimeoutError,
  GraphNotFoundError,
)
from robosystems_client.extensions.graph_client import (
  GraphMetadataInput,
  InitialEntityInput,
)
from tests.conftest import flush

STATUS_PATH = "/v1/operations/op_graph/status"

METADATA = GraphMetadataInput(graph_name="Demo", description="Test graph", tags=["demo"])


@pytest.fixture
def queued(router):
  router.add("POST", "/v1/graphs", {"operation_id": "op_graph", "status": "pending"})
  return router


class TestCreateGraph:
  @pytest.mark.asyncio
  async def test_immediate_graph_id(self, extensions, router):
    router.add("POST", "/v1/graphs", {"graph_id": "kg_new"})
    messages = []

    graph_id = await extensions.graphs.create_graph_and_wait(
      METADATA,
      initial_entity=InitialEntityInput(name="ACME", uri="https://acme.test"),
      on_progress=messages.append,
    )

    assert graph_id == "kg_new"
    body = json.loads(router.requests[0].content)
    assert body["metadata"]["graph_name"] == "Demo"
    assert body["initial_entity"]["name"] == "ACME"
    assert body["create_entity"] is True
    assert messages == ["Creating graph: Demo", "Graph created: kg_new"]

  @pytest.mark.asyncio
  async def test_completes_over_stream(self, extensions, queued, transport):
    messages = []
    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(METADATA, on_progress=messages.append)
    )
    await flush()

    transport.last.send("operation_progress", {"message": "Allocating database"})
    transport.last.send("operation_completed", {"result": {"graph_id": "kg_sse"}})

    assert await task == "kg_sse"
    assert "Allocating database" in messages
    assert queued.calls("GET", STATUS_PATH) == []

  @pytest.mark.asyncio
  async def test_server_failure_is_not_retried_by_polling(
    self, extensions, queued, transport
  ):
    task = asyncio.ensure_future(extensions.graphs.create_graph_and_wait(METADATA))
    await flush()

    transport.last.send("operation_error", {"message": "Quota exceeded"})

    with pytest.raises(GraphCreationError, match="Quota exceeded"):
      await task
    assert queued.calls("GET", STATUS_PATH) == []

  @pytest.mark.asyncio
  async def test_completed_without_graph_id(self, extensions, queued, transport):
    task = asyncio.ensure_future(extensions.graphs.create_graph_and_wait(METADATA))
    await flush()

    transport.last.send("operation_completed", {"result": {"status": "ok"}})

    with pytest.raises(GraphCreationError, match="no graph_id"):
      await task

  @pytest.mark.asyncio
  async def test_connect_failure_falls_back_to_polling(
    self, extensions, queued, transport, clock
  ):
    transport.refuse_opens = 1
    queued.add(
      "GET",
      STATUS_PATH,
      [{"status": "running"}, {"status": "completed", "result": {"graph_id": "kg_poll"}}],
    )

    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(METADATA, poll_interval=2.0)
    )
    await flush()
    await clock.advance(2.0)
    await clock.advance(2.0)

    assert await task == "kg_poll"
    assert len(queued.calls("GET", STATUS_PATH)) == 2

  @pytest.mark.asyncio
  async def test_polling_only_when_sse_disabled(self, extensions, queued, transport, clock):
    queued.add("GET", STATUS_PATH, {"status": "completed", "result": {"graph_id": "kg_p"}})

    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(METADATA, use_sse=False)
    )
    await flush()
    await clock.advance(2.0)

    assert await task == "kg_p"
    assert transport.handles == []

  @pytest.mark.asyncio
  async def test_polling_reports_failure(self, extensions, queued, clock):
    queued.add("GET", STATUS_PATH, {"status": "failed", "error": "Out of capacity"})

    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(METADATA, use_sse=False)
    )
    await flush()
    await clock.advance(2.0)

    with pytest.raises(GraphCreationError, match="Out of capacity"):
      await task

  @pytest.mark.asyncio
  async def test_polling_times_out(self, extensions, queued, clock):
    queued.add("GET", STATUS_PATH, {"status": "running"})

    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(
        METADATA, timeout=6.0, poll_interval=2.0, use_sse=False
      )
    )
    await flush()
    await clock.advance(6.0)

    with pytest.raises(GraphCreationTimeoutError):
      await task
    assert len(queued.calls("GET", STATUS_PATH)) == 3

  @pytest.mark.asyncio
  async def test_stream_timeout_raises_creation_timeout(
    self, extensions, queued, transport, clock
  ):
    task = asyncio.ensure_future(
      extensions.graphs.create_graph_and_wait(METADATA, timeout=60.0)
    )
    await flush()
    await clock.advance(60.0)

    with pytest.raises(GraphCreationTimeoutError):
      await task


class TestGraphInfo:
  @pytest.mark.asyncio
  async def test_list_and_lookup(self, extensions, router):
    router.add(
      "GET",
      "/v1/graphs",
      {"graphs": [{"graph_id": "kg1", "graph_name": "One"}, {"id": "kg2", "name": "Two"}]},
    )

    graphs = await extensions.graphs.list_graphs()
    info = await extensions.graphs.get_graph_info("kg2")

    assert [g.graph_id for g in graphs] == ["kg1", "kg2"]
    assert info.graph_name == "Two"

  @pytest.mark.asyncio
  async def test_lookup_missing(self, extensions, router):
    router.add("GET", "/v1/graphs", {"graphs": []})

    with pytest.raises(GraphNotFoundError):
      await extensions.graphs.get_graph_info("kg_missing")
