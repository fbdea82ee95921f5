"""
HTTP API client for initiating RoboSystems operations.

Thin async wrapper over httpx with retry, exponential backoff with jitter,
and status-code classification into the client exception hierarchy. The
executors use it for every initiating request; monitoring itself goes over
the event stream.
"""

import json
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from robosystems_client.exceptions import (
  APIClientError,
  APIError,
  APIServerError,
  APITimeoutError,
  APITransientError,
)
from robosystems_client.logger import logger
from .clock import Clock, default_clock
from .config import SDKExtensionsConfig


class APIClient:
  """Asynchronous client for the RoboSystems HTTP API."""

  def __init__(
    self,
    config: SDKExtensionsConfig,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None,
  ):
    """
    Initialize the API client.

    Args:
        config: Extension configuration
        http_transport: Optional httpx transport (tests pass httpx.MockTransport)
        clock: Time source for retry backoff
    """
    self.config = config
    self._clock = clock or default_clock
    self.client = httpx.AsyncClient(
      base_url=config.base_url,
      timeout=httpx.Timeout(config.timeout),
      headers=config.auth_headers(),
      verify=config.verify_ssl,
      transport=http_transport,
    )

  async def __aenter__(self):
    return self

  async def __aexit__(self, exc_type, exc_val, exc_tb):
    await self.close()

  async def close(self):
    """Close the client and cleanup resources."""
    await self.client.aclose()

  # --------------------------------------------------------------------------
  # Retry and error classification
  # --------------------------------------------------------------------------

  def _should_retry(self, error: Exception, attempt: int) -> bool:
    """
    Determine if request should be retried.

    Args:
        error: The exception that occurred
        attempt: Current attempt number (0-based)
    """
    if attempt >= self.config.http_max_retries:
      return False
    if isinstance(error, (APITransientError, APIServerError)):
      return True
    return False

  def _calculate_retry_delay(self, attempt: int) -> float:
    """Exponential backoff with up to 10% jitter."""
    delay = self.config.http_retry_delay * (self.config.http_retry_backoff**attempt)
    jitter = random.uniform(0, delay * 0.1)
    return delay + jitter

  def _handle_response_error(
    self, status_code: int, response_data: Optional[Dict[str, Any]] = None
  ) -> APIError:
    """
    Convert HTTP status code to appropriate exception.

    Args:
        status_code: HTTP status code
        response_data: Response body data

    Returns:
        Appropriate APIError subclass
    """
    error_message = f"API request failed with HTTP {status_code}"
    if response_data and isinstance(response_data, dict):
      detail = response_data.get("detail") or response_data.get("message")
      if detail:
        error_message = detail if isinstance(detail, str) else json.dumps(detail)

    if status_code in (502, 503, 504):
      return APITransientError(error_message, status_code, response_data)
    elif 400 <= status_code < 500:
      return APIClientError(error_message, status_code, response_data)
    elif status_code >= 500:
      return APIServerError(error_message, status_code, response_data)
    else:
      return APIError(error_message, status_code, response_data)

  def _convert_transport_error(self, error: Exception) -> Exception:
    if isinstance(error, httpx.TimeoutException):
      return APITimeoutError(f"Request timeout: {error}")
    elif isinstance(error, httpx.ConnectError):
      return APITransientError(f"Connection error: {error}")
    elif isinstance(error, httpx.RequestError):
      return APITransientError(f"Request error: {error}")
    return error

  @staticmethod
  def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
      data = response.json()
    except ValueError:
      return {"detail": response.text}
    return data if isinstance(data, dict) else {"detail": data}

  # --------------------------------------------------------------------------
  # Requests
  # --------------------------------------------------------------------------

  async def request(
    self,
    method: str,
    path: str,
    json_data: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
  ) -> httpx.Response:
    """
    Make HTTP request with retry logic.

    Args:
        method: HTTP method
        path: API path, relative to the configured base URL
        json_data: JSON body
        params: Query parameters
        timeout: Request timeout override

    Returns:
        Response object

    Raises:
        APIError: If the request fails and is not (or no longer) retriable
    """
    request_kwargs: Dict[str, Any] = {"method": method, "url": path}
    if json_data is not None:
      request_kwargs["json"] = json_data
    if params is not None:
      request_kwargs["params"] = params
    if timeout is not None:
      request_kwargs["timeout"] = timeout

    attempt = 0
    while True:
      try:
        logger.debug(f"Making request: {method} {path}")
        response = await self.client.request(**request_kwargs)
        if response.status_code >= 400:
          raise self._handle_response_error(
            response.status_code, self._error_body(response)
          )
        return response
      except (APIError, httpx.HTTPError) as e:
        error = self._convert_transport_error(e)
        if not self._should_retry(error, attempt):
          if error is e:
            raise
          raise error from e

        delay = self._calculate_retry_delay(attempt)
        logger.warning(
          f"Request {method} {path} failed (attempt {attempt + 1}/"
          f"{self.config.http_max_retries + 1}), retrying in {delay:.2f}s: {error}"
        )
        await self._clock.sleep(delay)
        attempt += 1

  async def request_json(self, method: str, path: str, **kwargs) -> Any:
    """Make a request and decode the JSON body (``{}`` for an empty body)."""
    response = await self.request(method, path, **kwargs)
    if not response.content:
      return {}
    return response.json()

  async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    return await self.request_json("GET", path, params=params)

  async def post_json(
    self,
    path: str,
    json_data: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> Any:
    return await self.request_json("POST", path, json_data=json_data, params=params)

  async def delete(self, path: str) -> Any:
    return await self.request_json("DELETE", path)

  @asynccontextmanager
  async def stream(
    self,
    method: str,
    path: str,
    json_data: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> AsyncIterator[httpx.Response]:
    """
    Open a streaming request, e.g. for NDJSON query results.

    Not retried: a partially consumed body cannot be replayed.

    Raises:
        APIError: On an error status or transport failure
    """
    try:
      async with self.client.stream(
        method, path, json=json_data, params=params
      ) as response:
        if response.status_code >= 400:
          await response.aread()
          raise self._handle_response_error(
            response.status_code, self._error_body(response)
          )
        yield response
    except httpx.HTTPError as e:
      raise self._convert_transport_error(e) from e
