"""Shared test fixtures for the servekit test suite."""
from __future__ import annotations

import logging
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.shared.config import ServiceConfig
from src.shared.constants import SERVICE_NAME

CONFIG_ENV_VARS = (
    "SERVICE_NAME",
    "APP_HOST",
    "APP_PORT",
    "APP_DEBUG",
    "APP_BASE_URL",
    "APP_REQUEST_TIMEOUT",
    "APP_SHUTDOWN_TIMEOUT",
    "DATABASE_URL",
    "DATABASE_SCHEMA",
    "DATABASE_POOL_MIN",
    "DATABASE_POOL_MAX",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "LOG_VERBOSE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of every ServiceConfig."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logging() -> Generator[None, None, None]:
    """setup_logging replaces root handlers; put the originals back."""
    root = logging.getLogger()
    service = logging.getLogger(SERVICE_NAME)
    handlers = list(root.handlers)
    level = root.level
    service_level = service.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    service.setLevel(service_level)


@pytest.fixture
def service_config() -> ServiceConfig:
    """Provide a config bound to an ephemeral local port."""
    return ServiceConfig(
        app_host="127.0.0.1",
        app_port=0,
        app_debug=False,
        request_timeout=5.0,
        shutdown_timeout=5.0,
    )


@pytest.fixture
def mock_pool() -> MagicMock:
    """Provide a stand-in for an asyncpg pool."""
    pool = MagicMock()
    pool.close = AsyncMock()
    pool.execute = AsyncMock(return_value="SET")
    pool.fetchval = AsyncMock(return_value=1)
    return pool
