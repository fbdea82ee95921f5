"""Tests for the HTTP request collaborator."""

import asyncio

import httpx
import pytest

from robosystems_client.exceptions import (
  APIClientError,
  APIError,
  APIServerError,
  APITimeoutError,
  APITransientError,
)
from robosystems_client.extensions.api import APIClient
from tests.conftest import flush


def make_client(config, handler, clock, **overrides) -> APIClient:
  return APIClient(
    config.with_overrides(**overrides),
    http_transport=httpx.MockTransport(handler),
    clock=clock,
  )


class TestErrorClassification:
  @pytest.mark.parametrize(
    "status,error_cls",
    [
      (400, APIClientError),
      (404, APIClientError),
      (500, APIServerError),
      (502, APITransientError),
      (503, APITransientError),
      (504, APITransientError),
    ],
  )
  def test_status_mapping(self, config, clock, status, error_cls):
    client = make_client(config, lambda r: httpx.Response(200), clock)

    error = client._handle_response_error(status, {"detail": "nope"})

    assert type(error) is error_cls
    assert error.status_code == status
    assert error.message == "nope"

  def test_structured_detail_serialized(self, config, clock):
    client = make_client(config, lambda r: httpx.Response(200), clock)

    error = client._handle_response_error(422, {"detail": [{"loc": ["body"]}]})

    assert error.message == '[{"loc": ["body"]}]'

  def test_transport_errors_converted(self, config, clock):
    client = make_client(config, lambda r: httpx.Response(200), clock)

    assert isinstance(
      client._convert_transport_error(httpx.ReadTimeout("slow")), APITimeoutError
    )
    assert isinstance(
      client._convert_transport_error(httpx.ConnectError("refused")), APITransientError
    )


class TestRequests:
  @pytest.mark.asyncio
  async def test_auth_and_custom_headers(self, config, clock):
    seen = []

    def handler(request):
      seen.append(request)
      return httpx.Response(200, json={"ok": True})

    client = make_client(
      config, handler, clock, token="a.b.c", headers={"X-Client": "tests"}
    )

    assert await client.get_json("/v1/ping") == {"ok": True}
    assert seen[0].headers["Authorization"] == "Bearer a.b.c"
    assert seen[0].headers["X-Client"] == "tests"
    assert str(seen[0].url) == "http://api.test/v1/ping"
    await client.close()

  @pytest.mark.asyncio
  async def test_empty_body_decodes_to_empty_dict(self, config, clock):
    client = make_client(config, lambda r: httpx.Response(204), clock)

    assert await client.delete("/v1/operations/op_1") == {}
    await client.close()

  @pytest.mark.asyncio
  async def test_client_error_not_retried(self, config, clock):
    calls = []

    def handler(request):
      calls.append(request)
      return httpx.Response(404, json={"detail": "Missing"})

    client = make_client(config, handler, clock, http_max_retries=3)

    with pytest.raises(APIClientError, match="Missing"):
      await client.get_json("/v1/graphs")
    assert len(calls) == 1
    await client.close()

  @pytest.mark.asyncio
  async def test_transient_error_retried_with_backoff(self, config, clock):
    responses = [httpx.Response(503), httpx.Response(503), httpx.Response(200, json={"a": 1})]

    client = make_client(config, lambda r: responses.pop(0), clock, http_max_retries=2)
    task = asyncio.ensure_future(client.get_json("/v1/graphs"))
    await flush()
    await clock.advance(10.0)

    assert await task == {"a": 1}
    assert len(clock.sleeps) == 2
    # http_retry_delay 1.0 * backoff 2.0 ** attempt, plus up to 10% jitter
    assert 1.0 <= clock.sleeps[0] <= 1.1
    assert 2.0 <= clock.sleeps[1] <= 2.2
    await client.close()

  @pytest.mark.asyncio
  async def test_retry_delay_independent_of_stream_backoff(self, config, clock):
    responses = [httpx.Response(502), httpx.Response(200, json={})]

    client = make_client(
      config,
      lambda r: responses.pop(0),
      clock,
      http_max_retries=1,
      retry_delay=10.0,
      http_retry_delay=0.5,
    )
    task = asyncio.ensure_future(client.get_json("/v1/graphs"))
    await flush()
    await clock.advance(1.0)

    assert await task == {}
    assert 0.5 <= clock.sleeps[0] <= 0.55
    await client.close()

  @pytest.mark.asyncio
  async def test_retry_budget_exhausted(self, config, clock):
    client = make_client(config, lambda r: httpx.Response(500), clock, http_max_retries=1)
    task = asyncio.ensure_future(client.post_json("/v1/graphs", {"x": 1}))
    await flush()
    await clock.advance(10.0)

    with pytest.raises(APIServerError):
      await task
    await client.close()

  @pytest.mark.asyncio
  async def test_network_error_wrapped(self, config, clock):
    def handler(request):
      raise httpx.ConnectError("refused", request=request)

    client = make_client(config, handler, clock)

    with pytest.raises(APITransientError) as exc_info:
      await client.get_json("/v1/graphs")
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    await client.close()

  @pytest.mark.asyncio
  async def test_stream_error_status(self, config, clock):
    client = make_client(
      config, lambda r: httpx.Response(500, json={"message": "exploded"}), clock
    )

    with pytest.raises(APIError, match="exploded"):
      async with client.stream("POST", "/v1/graphs/kg1/query"):
        pass
    await client.close()
