"""Shared constants used across the service."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

# Service identity
SERVICE_NAME: str = "servekit"

# Listener defaults
DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8000
LISTEN_BACKLOG: int = 2048

# Seconds a request may run before the timeout stage answers 503 (0 disables)
DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 30.0

# Seconds allowed for in-flight requests to drain once shutdown starts
SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

# Database settings
DEFAULT_DB_SCHEMA: str = "public"

# Log levels accepted by LOG_LEVEL
LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error", "critical")

# Header carrying the per-request identifier
REQUEST_ID_HEADER: str = "X-Request-ID"

# Seconds a client should wait before polling an unhealthy service again
HEALTH_RETRY_AFTER_SECONDS: int = 5
