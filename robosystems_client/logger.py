"""
RoboSystems Client Logging

This module provides the logging interface used across the client:
1. Separate loggers for stream and operation-monitoring components
2. A NullHandler on the package logger, so nothing is printed unless the
   host application configures logging

The client never configures logging on import by default. Call
``robosystems_client.config.logging.setup_logging()`` explicitly, or set
ROBOSYSTEMS_CONFIGURE_LOGGING=true, to install the structured handlers.
"""

import logging
from typing import Any, Dict, Optional

from .config import env
from .config.logging import get_logger, log_error, setup_logging

# Main client logger
logger = get_logger("robosystems_client")
logger.addHandler(logging.NullHandler())

if env.CONFIGURE_LOGGING:
  setup_logging()

# Component loggers
sse_logger = get_logger("robosystems_client.sse")
operations_logger = get_logger("robosystems_client.operations")


def log_app_error(
  error: Exception,
  component: str,
  action: str,
  error_category: str = "client",
  operation_id: Optional[str] = None,
  metadata: Optional[Dict[str, Any]] = None,
) -> None:
  """Log client errors with context."""
  log_error(logger, error, component, action, error_category, operation_id, metadata)


__all__ = [
  "logger",
  "sse_logger",
  "operations_logger",
  "log_app_error",
  "get_logger",
  "setup_logging",
]
