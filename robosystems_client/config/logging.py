"""
Structured Logging Configuration for the RoboSystems client.

This module provides structured logging for the client's own logger
hierarchy. Nothing here runs on import: setup_logging() must be called
explicitly. It only configures the robosystems_client loggers and leaves
the root logger and third-party loggers (httpx, httpcore) alone.

Key Features:
- Structured JSON output with consistent field names
- Operation-aware fields (operation_id, event_type, attempt)
- Automatic log level management by environment
"""

import json
import logging
import logging.config
import traceback
from datetime import datetime, timezone
from typing import Any

from robosystems_client.config.env import EnvConfig

CLIENT_LOGGERS = [
  "robosystems_client",
  "robosystems_client.sse",
  "robosystems_client.operations",
]


class StructuredFormatter(logging.Formatter):
  """
  JSON formatter for client log records.

  Output format:
  - Timestamp in ISO format
  - Consistent field names for filtering
  - Operation context preserved as searchable fields
  """

  def format(self, record: logging.LogRecord) -> str:
    log_entry = {
      "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
      .isoformat()
      .replace("+00:00", "Z"),
      "level": record.levelname,
      "component": getattr(record, "component", record.name),
      "message": record.getMessage(),
    }

    if hasattr(record, "action"):
      log_entry["action"] = record.action

    # Operation context
    if hasattr(record, "operation_id"):
      log_entry["operation_id"] = record.operation_id
    if hasattr(record, "event_type"):
      log_entry["event_type"] = record.event_type
    if hasattr(record, "attempt"):
      log_entry["attempt"] = record.attempt
    if hasattr(record, "sequence_number"):
      log_entry["sequence_number"] = record.sequence_number

    if record.levelno >= logging.ERROR:
      if record.exc_info:
        log_entry["error"] = {
          "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
          "message": str(record.exc_info[1]) if record.exc_info[1] else "",
          "traceback": traceback.format_exception(*record.exc_info),
        }

      if hasattr(record, "error_category"):
        log_entry["error_category"] = record.error_category

    if hasattr(record, "metadata"):
      log_entry["metadata"] = record.metadata

    return json.dumps(log_entry, default=str, separators=(",", ":"))


def get_logging_config(environment: str | None = None) -> dict[str, Any]:
  """
  Generate logging configuration based on environment.

  - prod: INFO level, structured output
  - staging: INFO level, structured output
  - test: WARNING level, minimal output for clean test runs
  - dev: DEBUG level, plain text (unless ROBOSYSTEMS_LOG_LEVEL overrides)
  """
  env = environment or EnvConfig.ENVIRONMENT
  log_level_override = EnvConfig.LOG_LEVEL or None

  if env in ("prod", "production", "staging"):
    default_level = log_level_override or "INFO"
  elif env == "test":
    default_level = log_level_override or "WARNING"
  else:  # dev
    default_level = log_level_override or "DEBUG"

  handler = "console" if env in ("dev", "development") else "structured"

  config: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
      "structured": {
        "()": StructuredFormatter,
      },
      "simple": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
    },
    "handlers": {
      "structured": {
        "class": "logging.StreamHandler",
        "level": default_level,
        "formatter": "structured",
        "stream": "ext://sys.stderr",
      },
      "console": {
        "class": "logging.StreamHandler",
        "level": default_level,
        "formatter": "simple",
        "stream": "ext://sys.stderr",
      },
    },
    "loggers": {
      "robosystems_client": {
        "level": default_level,
        "handlers": [handler],
        "propagate": False,
      },
      # Children inherit the parent's handlers
      "robosystems_client.sse": {"level": default_level},
      "robosystems_client.operations": {"level": default_level},
    },
  }

  return config


def setup_logging(environment: str | None = None) -> None:
  """Initialize structured logging for the client loggers."""
  config = get_logging_config(environment)
  logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
  """Get a logger with structured logging capabilities."""
  return logging.getLogger(name)


def log_error(
  logger: logging.Logger,
  error: Exception,
  component: str,
  action: str,
  error_category: str = "client",
  operation_id: str | None = None,
  metadata: dict[str, Any] | None = None,
) -> None:
  """Log error with structured data for easy searching."""
  extra: dict[str, Any] = {
    "component": component,
    "action": action,
    "error_category": error_category,
    "metadata": metadata or {},
  }
  if operation_id is not None:
    extra["operation_id"] = operation_id

  logger.error(
    f"Error in {component}.{action}: {error!s}",
    exc_info=(type(error), error, error.__traceback__),
    extra=extra,
  )
