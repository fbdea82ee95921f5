"""Tests for the copy executor."""

import asyncio
import json
from unittest.mock import Mock

import httpx
import pytest

from robosystems_client.exceptions import QueuedCopyError
from robosystems_client.extensions.copy_client import (
  CopyResult,
  is_retryable_error,
)
from tests.conftest import flush

COPY_PATH = "/v1/graphs/kg123/copy"

S3_REQUEST = {
  "table_name": "transactions",
  "s3_path": "s3://bucket/transactions/*.parquet",
  "s3_access_key_id": "AKIA",
  "s3_secret_access_key": "secret",
}

ACCEPTED = {
  "status": "accepted",
  "operation_id": "op_copy",
  "sse_url": "/v1/operations/op_copy/stream",
  "message": "Copy started",
}


class TestCopy:
  @pytest.mark.asyncio
  async def test_sync_copy(self, extensions, router):
    router.add(
      "POST",
      COPY_PATH,
      {"status": "completed", "rows_imported": 100, "rows_skipped": 2, "bytes_processed": 2048},
    )

    result = await extensions.copy.copy_from_s3("kg123", S3_REQUEST)

    assert result.status == "completed"
    assert result.rows_imported == 100
    assert result.rows_skipped == 2
    body = json.loads(router.requests[0].content)
    assert body["source_type"] == "s3"
    assert body["table_name"] == "transactions"

  @pytest.mark.asyncio
  async def test_source_type_per_method(self, extensions, router):
    router.add("POST", COPY_PATH, {"status": "completed"})

    await extensions.copy.copy_from_url("kg123", {"table_name": "t", "url": "https://x"})
    await extensions.copy.copy_from_dataframe("kg123", {"table_name": "t", "data": []})

    types = [json.loads(r.content)["source_type"] for r in router.requests]
    assert types == ["url", "dataframe"]

  @pytest.mark.asyncio
  async def test_copy_s3_convenience(self, extensions, router):
    router.add("POST", COPY_PATH, {"status": "completed"})

    await extensions.copy.copy_s3(
      "kg123", "entities", "s3://b/e.csv", "AKIA", "secret", file_format="csv"
    )

    body = json.loads(router.requests[0].content)
    assert body["s3_path"] == "s3://b/e.csv"
    assert body["s3_region"] == "us-east-1"
    assert body["file_format"] == "csv"

  @pytest.mark.asyncio
  async def test_http_failure_becomes_failed_result(self, extensions, router):
    router.add("POST", COPY_PATH, httpx.Response(403, json={"detail": "Forbidden"}))

    result = await extensions.copy.copy_from_s3("kg123", S3_REQUEST)

    assert result.status == "failed"
    assert result.error == "Forbidden"

  @pytest.mark.asyncio
  async def test_accepted_without_stream_returns_accepted(self, extensions, router):
    router.add(
      "POST", COPY_PATH, {"status": "accepted", "operation_id": "op_copy", "message": "Queued"}
    )

    result = await extensions.copy.copy_from_s3("kg123", S3_REQUEST)

    assert result.status == "accepted"
    assert result.operation_id == "op_copy"
    assert result.message == "Queued"

  @pytest.mark.asyncio
  async def test_accepted_no_wait_raises(self, extensions, router):
    router.add("POST", COPY_PATH, dict(ACCEPTED))

    with pytest.raises(QueuedCopyError) as exc_info:
      await extensions.copy.copy_from_s3("kg123", S3_REQUEST, max_wait=0)

    assert exc_info.value.queue_info == ACCEPTED

  @pytest.mark.asyncio
  async def test_accepted_is_monitored(self, extensions, router, transport):
    router.add("POST", COPY_PATH, dict(ACCEPTED))
    progress = []
    warnings = Mock()

    task = asyncio.ensure_future(
      extensions.copy.copy_from_s3(
        "kg123", S3_REQUEST, on_progress=progress.append, on_warning=warnings
      )
    )
    await flush()

    transport.last.send(
      "operation_progress", {"message": "Loading", "warnings": ["bad row 7"]}
    )
    transport.last.send(
      "operation_completed",
      {"result": {"rows_imported": 500, "rows_skipped": 1, "bytes_processed": 10}},
    )
    result = await task

    assert result.status == "completed"
    assert result.rows_imported == 500
    assert result.operation_id == "op_copy"
    assert result.warnings == ["bad row 7"]
    warnings.assert_called_once_with("bad row 7")
    assert progress[0].message == "Copy operation started. Monitoring progress..."
    assert progress[1].message == "Loading"

  @pytest.mark.asyncio
  async def test_monitored_failure(self, extensions, router, transport):
    router.add("POST", COPY_PATH, dict(ACCEPTED))

    task = asyncio.ensure_future(extensions.copy.copy_from_s3("kg123", S3_REQUEST))
    await flush()
    transport.last.send("operation_error", {"message": "S3 access denied"})
    result = await task

    assert result.status == "failed"
    assert result.error == "S3 access denied"

  @pytest.mark.asyncio
  async def test_monitored_cancel(self, extensions, router, transport):
    router.add("POST", COPY_PATH, dict(ACCEPTED))

    task = asyncio.ensure_future(extensions.copy.copy_from_s3("kg123", S3_REQUEST))
    await flush()
    transport.last.send("operation_cancelled", {})
    result = await task

    assert result.status == "failed"
    assert result.error == "Copy operation cancelled"

  @pytest.mark.asyncio
  async def test_batch_copy(self, extensions, router):
    router.add("POST", COPY_PATH, {"status": "completed", "rows_imported": 1})

    results = await extensions.copy.batch_copy_from_s3(
      "kg123", [{"request": S3_REQUEST}, {"request": S3_REQUEST, "options": {}}]
    )

    assert [r.status for r in results] == ["completed", "completed"]

  @pytest.mark.asyncio
  async def test_monitor_multiple_copies(self, extensions, transport):
    task = asyncio.ensure_future(extensions.copy.monitor_multiple_copies(["op_a", "op_b"]))
    await flush()

    for handle in transport.handles:
      handle.send("operation_completed", {"result": {"rows_imported": 3}})
    results = await task

    assert set(results) == {"op_a", "op_b"}
    assert all(r.rows_imported == 3 for r in results.values())

  @pytest.mark.asyncio
  async def test_monitor_multiple_copies_empty(self, extensions):
    assert await extensions.copy.monitor_multiple_copies([]) == {}


class TestCopyWithRetry:
  @pytest.mark.asyncio
  async def test_retries_transient_failure(self, extensions, router, clock):
    router.add(
      "POST",
      COPY_PATH,
      [
        {"status": "failed", "error_details": "Connection reset"},
        {"status": "completed", "rows_imported": 9},
      ],
    )

    task = asyncio.ensure_future(
      extensions.copy.copy_with_retry("kg123", S3_REQUEST, "s3", max_retries=3)
    )
    await flush()
    await clock.advance(1.0)
    result = await task

    assert result.status == "completed"
    assert result.rows_imported == 9
    assert clock.sleeps == [1.0]

  @pytest.mark.asyncio
  async def test_non_retryable_failure_returns_immediately(self, extensions, router, clock):
    router.add("POST", COPY_PATH, {"status": "failed", "error_details": "Invalid schema"})

    result = await extensions.copy.copy_with_retry("kg123", S3_REQUEST, "s3")

    assert result.status == "failed"
    assert len(router.requests) == 1
    assert clock.sleeps == []


class TestCopyHelpers:
  @pytest.mark.parametrize(
    "error,expected",
    [
      ("Connection timeout", True),
      ("Service temporarily unavailable", True),
      ("Rate limit exceeded", True),
      ("Request throttled", True),
      ("Invalid file format", False),
      (None, False),
      ("", False),
    ],
  )
  def test_is_retryable_error(self, error, expected):
    assert is_retryable_error(error) is expected

  def test_calculate_statistics(self, extensions):
    stats = extensions.copy.calculate_statistics(
      CopyResult(
        status="completed",
        rows_imported=1000,
        rows_skipped=10,
        bytes_processed=4096,
        execution_time_ms=2000,
      )
    )

    assert stats.total_rows == 1010
    assert stats.duration == 2.0
    assert stats.throughput == 500

  def test_statistics_none_for_failed(self, extensions):
    assert extensions.copy.calculate_statistics(CopyResult(status="failed")) is None
