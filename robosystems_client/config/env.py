"""
Centralized environment variable configuration for the RoboSystems client.

This module provides a single source of truth for the environment variables
the client reads, with type conversions and default values.

Organization:
- Helper functions for type-safe env var access
- Core client settings
- Streaming and operation monitoring defaults
"""

import os

from .constants import (
  DEFAULT_API_URL,
  DEFAULT_CLEANUP_DELAY,
  DEFAULT_CLEANUP_INTERVAL,
  DEFAULT_CONNECT_TIMEOUT,
  DEFAULT_HEARTBEAT_INTERVAL,
  DEFAULT_HTTP_MAX_RETRIES,
  DEFAULT_HTTP_TIMEOUT,
  DEFAULT_SSE_MAX_RETRIES,
  DEFAULT_SSE_RETRY_DELAY,
)


# ==========================================================================
# HELPER FUNCTIONS FOR TYPE-SAFE ENVIRONMENT VARIABLE ACCESS
# ==========================================================================


def get_int_env(key: str, default: int) -> int:
  """
  Get an integer environment variable with safe type conversion.

  Args:
      key: Environment variable name
      default: Default value if not set or invalid

  Returns:
      Integer value from environment or default
  """
  try:
    return int(os.getenv(key, str(default)))
  except (ValueError, TypeError):
    # Use print instead of logger to avoid circular import
    print(f"Warning: Invalid {key} value, using default: {default}")
    return default


def get_float_env(key: str, default: float) -> float:
  """
  Get a float environment variable with safe type conversion.

  Args:
      key: Environment variable name
      default: Default value if not set or invalid

  Returns:
      Float value from environment or default
  """
  try:
    return float(os.getenv(key, str(default)))
  except (ValueError, TypeError):
    print(f"Warning: Invalid {key} value, using default: {default}")
    return default


def get_bool_env(key: str, default: bool = False) -> bool:
  """Get a boolean environment variable."""
  value = os.getenv(key, str(default)).lower()
  return value in ("true", "1", "yes", "on")


def get_str_env(key: str, default: str = "") -> str:
  """Get a string environment variable."""
  return os.getenv(key, default)


class EnvConfig:
  """
  Environment-backed settings for the client.

  Values are read once at import. Clients built with an explicit
  SDKExtensionsConfig never consult these beyond their defaults.
  """

  # ==========================================================================
  # CORE CLIENT SETTINGS
  # ==========================================================================
  ENVIRONMENT = get_str_env("ROBOSYSTEMS_ENVIRONMENT", "dev")
  LOG_LEVEL = get_str_env("ROBOSYSTEMS_LOG_LEVEL", "")
  CONFIGURE_LOGGING = get_bool_env("ROBOSYSTEMS_CONFIGURE_LOGGING", False)

  ROBOSYSTEMS_API_URL = get_str_env("ROBOSYSTEMS_API_URL", DEFAULT_API_URL)
  ROBOSYSTEMS_API_TOKEN = get_str_env("ROBOSYSTEMS_API_TOKEN", "")

  # ==========================================================================
  # HTTP SETTINGS
  # ==========================================================================
  HTTP_TIMEOUT = get_float_env("ROBOSYSTEMS_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)
  HTTP_MAX_RETRIES = get_int_env(
    "ROBOSYSTEMS_HTTP_MAX_RETRIES", DEFAULT_HTTP_MAX_RETRIES
  )

  # ==========================================================================
  # STREAMING / OPERATION MONITORING
  # ==========================================================================
  SSE_MAX_RETRIES = get_int_env("ROBOSYSTEMS_SSE_MAX_RETRIES", DEFAULT_SSE_MAX_RETRIES)
  SSE_RETRY_DELAY = get_float_env(
    "ROBOSYSTEMS_SSE_RETRY_DELAY", DEFAULT_SSE_RETRY_DELAY
  )
  SSE_CONNECT_TIMEOUT = get_float_env(
    "ROBOSYSTEMS_SSE_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT
  )
  SSE_HEARTBEAT_INTERVAL = get_float_env(
    "ROBOSYSTEMS_SSE_HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL
  )
  OPERATION_CLEANUP_DELAY = get_float_env(
    "ROBOSYSTEMS_OPERATION_CLEANUP_DELAY", DEFAULT_CLEANUP_DELAY
  )
  OPERATION_CLEANUP_INTERVAL = get_float_env(
    "ROBOSYSTEMS_OPERATION_CLEANUP_INTERVAL", DEFAULT_CLEANUP_INTERVAL
  )

  @classmethod
  def is_production(cls) -> bool:
    return cls.ENVIRONMENT in ("prod", "production")

  @classmethod
  def is_development(cls) -> bool:
    return cls.ENVIRONMENT in ("dev", "development")


# ==========================================================================
# SINGLETON INSTANCE
# ==========================================================================

env = EnvConfig()
