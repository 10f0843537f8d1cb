"""Tests for shared constants values."""
from __future__ import annotations

from src.shared.constants import (
    DEFAULT_DB_SCHEMA,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    LOG_LEVELS,
    REQUEST_ID_HEADER,
    SHUTDOWN_TIMEOUT_SECONDS,
    VERSION,
)


class TestListenerConstants:
    def test_default_port(self):
        assert DEFAULT_PORT == 8000

    def test_port_is_valid(self):
        assert 0 < DEFAULT_PORT < 65536


class TestTimeouts:
    def test_shutdown_timeout(self):
        assert SHUTDOWN_TIMEOUT_SECONDS == 5.0

    def test_request_timeout_positive(self):
        assert DEFAULT_REQUEST_TIMEOUT_SECONDS > 0


class TestMiscConstants:
    def test_version_format(self):
        parts = VERSION.split(".")
        assert len(parts) == 3
        assert all(p.isdigit() for p in parts)

    def test_default_schema(self):
        assert DEFAULT_DB_SCHEMA == "public"

    def test_log_levels_lowercase(self):
        assert all(level == level.lower() for level in LOG_LEVELS)
        assert "info" in LOG_LEVELS

    def test_request_id_header(self):
        assert REQUEST_ID_HEADER == "X-Request-ID"
