"""
SDK Extensions Configuration.

Centralized configuration for the streaming and operation-monitoring
clients: base URL, credential mode, headers, token, and every timing knob
used by reconnection and cleanup. All durations are in seconds.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Literal, Optional

from robosystems_client.config import env
from robosystems_client.config.constants import (
  DEFAULT_CLEANUP_DELAY,
  DEFAULT_CLEANUP_INTERVAL,
  DEFAULT_CONNECT_TIMEOUT,
  DEFAULT_HEARTBEAT_INTERVAL,
  DEFAULT_HTTP_RETRY_BACKOFF,
  DEFAULT_HTTP_RETRY_DELAY,
  DEFAULT_SSE_MAX_RETRIES,
  DEFAULT_SSE_RETRY_DELAY,
)
from robosystems_client.logger import logger

CredentialsMode = Literal["include", "same-origin", "omit"]


@dataclass
class SDKExtensionsConfig:
  """Configuration for the SDK extension clients."""

  # Connection settings
  base_url: str = field(default_factory=lambda: env.ROBOSYSTEMS_API_URL)
  credentials: CredentialsMode = "include"
  headers: Dict[str, str] = field(default_factory=dict)
  token: Optional[str] = field(default_factory=lambda: env.ROBOSYSTEMS_API_TOKEN or None)
  timeout: float = field(default_factory=lambda: env.HTTP_TIMEOUT)

  # Stream reconnection
  max_retries: int = DEFAULT_SSE_MAX_RETRIES
  retry_delay: float = DEFAULT_SSE_RETRY_DELAY
  heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
  connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

  # Operation monitoring
  monitor_timeout: Optional[float] = None
  cleanup_delay: float = DEFAULT_CLEANUP_DELAY
  cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL

  # Initiating HTTP requests
  http_max_retries: int = field(default_factory=lambda: env.HTTP_MAX_RETRIES)
  http_retry_delay: float = DEFAULT_HTTP_RETRY_DELAY
  http_retry_backoff: float = DEFAULT_HTTP_RETRY_BACKOFF
  verify_ssl: bool = True

  def __post_init__(self):
    self.base_url = self.base_url.rstrip("/")

  @classmethod
  def from_env(cls, prefix: str = "ROBOSYSTEMS_") -> "SDKExtensionsConfig":
    """
    Create configuration from environment variables.

    Args:
        prefix: Environment variable prefix

    Returns:
        SDKExtensionsConfig instance
    """
    config = cls()

    # Map of config attribute to env var suffix
    env_mappings = {
      "base_url": "API_URL",
      "token": "API_TOKEN",
      "credentials": "CREDENTIALS",
      "timeout": "HTTP_TIMEOUT",
      "max_retries": "SSE_MAX_RETRIES",
      "retry_delay": "SSE_RETRY_DELAY",
      "heartbeat_interval": "SSE_HEARTBEAT_INTERVAL",
      "connect_timeout": "SSE_CONNECT_TIMEOUT",
      "cleanup_delay": "OPERATION_CLEANUP_DELAY",
      "cleanup_interval": "OPERATION_CLEANUP_INTERVAL",
      "http_max_retries": "HTTP_MAX_RETRIES",
      "http_retry_delay": "HTTP_RETRY_DELAY",
      "verify_ssl": "VERIFY_SSL",
    }

    for attr, env_suffix in env_mappings.items():
      value = os.environ.get(prefix + env_suffix)
      if value is None:
        continue

      current = getattr(config, attr)
      if isinstance(current, bool):
        setattr(config, attr, value.lower() in ("true", "1", "yes"))
      elif isinstance(current, (int, float)):
        setattr(config, attr, type(current)(value))
      elif attr == "token":
        setattr(config, attr, value or None)
      else:
        setattr(config, attr, value)

    config.base_url = config.base_url.rstrip("/")
    return config

  @classmethod
  def for_environment(
    cls, environment: Literal["production", "staging", "development"] = "development"
  ) -> "SDKExtensionsConfig":
    """Get the preset configuration for a deployment environment."""
    presets: Dict[str, Dict[str, Any]] = {
      "production": {
        "base_url": "https://api.robosystems.ai",
        "timeout": 60.0,
        "max_retries": 5,
        "retry_delay": 2.0,
      },
      "staging": {
        "base_url": "https://staging-api.robosystems.ai",
        "timeout": 45.0,
        "max_retries": 3,
        "retry_delay": 1.5,
      },
      "development": {
        "base_url": "http://localhost:8000",
        "timeout": 30.0,
        "max_retries": 3,
        "retry_delay": 1.0,
      },
    }
    if environment not in presets:
      raise ValueError(f"Unknown environment: {environment}")

    overrides = dict(presets[environment])
    # An explicitly configured API URL wins over the preset
    if os.environ.get("ROBOSYSTEMS_API_URL"):
      overrides["base_url"] = os.environ["ROBOSYSTEMS_API_URL"]
    return cls(credentials="include", **overrides)

  def with_overrides(self, **kwargs: Any) -> "SDKExtensionsConfig":
    """
    Create a new config with overridden values.

    Args:
        **kwargs: Values to override

    Returns:
        New SDKExtensionsConfig instance
    """
    known = {f.name for f in fields(self)}
    unknown = set(kwargs) - known
    if unknown:
      raise TypeError(f"Unknown config fields: {', '.join(sorted(unknown))}")

    config = replace(self, **kwargs)
    if "headers" not in kwargs:
      config.headers = self.headers.copy()
    return config

  def with_jwt(self, token: str, **kwargs: Any) -> "SDKExtensionsConfig":
    """
    Configure for JWT authentication.

    When a bearer token is used, cookies are typically not needed, so the
    credential mode defaults to "omit" unless overridden.
    """
    if not is_valid_jwt(token):
      logger.warning("Provided JWT token does not appear to be valid")

    kwargs.setdefault("credentials", "omit")
    return self.with_overrides(token=token, **kwargs)

  def auth_headers(self) -> Dict[str, str]:
    """Headers for initiating HTTP requests."""
    headers = dict(self.headers)
    if self.token and "Authorization" not in headers:
      headers["Authorization"] = f"Bearer {self.token}"
    return headers

  def stream_params(self) -> Dict[str, str]:
    """
    Extra query parameters for the event stream.

    Browsers cannot set headers on an event stream, so the server also
    accepts the bearer token as a query parameter. It is sent only when
    cookie credentials are not in use.
    """
    if self.token and self.credentials != "include":
      return {"token": self.token}
    return {}


def is_valid_jwt(token: Optional[str]) -> bool:
  """Basic JWT shape check: header.payload.signature, all non-empty."""
  if not token or not isinstance(token, str):
    return False
  parts = token.split(".")
  return len(parts) == 3 and all(parts)
