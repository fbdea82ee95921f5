"""
Client-wide constants.

All durations are in seconds.
"""

DEFAULT_API_URL = "http://localhost:8000"

# HTTP request collaborator
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_HTTP_MAX_RETRIES = 3
DEFAULT_HTTP_RETRY_DELAY = 1.0
DEFAULT_HTTP_RETRY_BACKOFF = 2.0

# Server-Sent Events stream
DEFAULT_SSE_MAX_RETRIES = 5
DEFAULT_SSE_RETRY_DELAY = 1.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_HEARTBEAT_INTERVAL = 30.0

# Operation monitor
DEFAULT_CLEANUP_DELAY = 5.0  # grace period after a terminal event
DEFAULT_CLEANUP_INTERVAL = 300.0  # periodic sweep of dead connections

# Executors
DEFAULT_COPY_TIMEOUT = 3600.0
DEFAULT_GRAPH_CREATION_TIMEOUT = 60.0
DEFAULT_GRAPH_POLL_INTERVAL = 2.0
COPY_RETRY_MAX_WAIT = 30.0

# Stream endpoint template
OPERATION_STREAM_PATH = "/v1/operations/{operation_id}/stream"
OPERATION_STATUS_PATH = "/v1/operations/{operation_id}/status"
OPERATION_PATH = "/v1/operations/{operation_id}"
