"""Service configuration snapshot using pydantic-settings."""
from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from src.shared.constants import (
    DEFAULT_DB_SCHEMA,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    LOG_LEVELS,
    SERVICE_NAME,
    SHUTDOWN_TIMEOUT_SECONDS,
)


class LogFormat(str, Enum):
    """Output format of the log handler."""
    PLAINTEXT = "plaintext"
    JSON = "json"


class ServiceConfig(BaseSettings):
    """Immutable runtime settings, read once at process start.

    Instances are frozen: every request shares the same object and nothing
    may reassign a field after construction.
    """
    service_name: str = Field(default=SERVICE_NAME, validation_alias="SERVICE_NAME")

    app_host: str = Field(default=DEFAULT_HOST, validation_alias="APP_HOST")
    app_port: int = Field(default=DEFAULT_PORT, ge=0, le=65535, validation_alias="APP_PORT")
    app_debug: bool = Field(default=False, validation_alias="APP_DEBUG")
    app_base_url: str = Field(default="", validation_alias="APP_BASE_URL")
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS, ge=0, validation_alias="APP_REQUEST_TIMEOUT"
    )
    shutdown_timeout: float = Field(
        default=SHUTDOWN_TIMEOUT_SECONDS, gt=0, validation_alias="APP_SHUTDOWN_TIMEOUT"
    )

    database_url: str = Field(default="", validation_alias="DATABASE_URL")
    database_schema: str = Field(default=DEFAULT_DB_SCHEMA, validation_alias="DATABASE_SCHEMA")
    database_pool_min: int = Field(default=1, ge=0, validation_alias="DATABASE_POOL_MIN")
    database_pool_max: int = Field(default=10, ge=1, validation_alias="DATABASE_POOL_MAX")

    log_format: LogFormat = Field(default=LogFormat.PLAINTEXT, validation_alias="LOG_FORMAT")
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    log_verbose: bool = Field(default=False, validation_alias="LOG_VERBOSE")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
        "frozen": True,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalize_format(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level == "warn":
            level = "warning"
        if level not in LOG_LEVELS:
            raise ValueError(
                f"unknown log level {value!r}, expected one of {', '.join(LOG_LEVELS)}"
            )
        return level

    @property
    def bind_address(self) -> str:
        """Return the ``host:port`` the listener binds to."""
        return f"{self.app_host}:{self.app_port}"

    @property
    def base_url(self) -> str:
        """Return the public base URL of the service."""
        if self.app_base_url:
            return self.app_base_url.rstrip("/")
        return f"http://{self.bind_address}"

    @property
    def has_database(self) -> bool:
        return bool(self.database_url)
