"""PostgreSQL connection pool factory backed by asyncpg."""
from __future__ import annotations

import logging
import re

import asyncpg

from src.shared.config import ServiceConfig
from src.shared.constants import DEFAULT_DB_SCHEMA

logger = logging.getLogger(__name__)

# Names PostgreSQL folds to themselves, so they need no quoting
_PLAIN_IDENTIFIER = re.compile(r"[a-z_][a-z0-9_]*")


class DatabaseError(Exception):
    """Base exception for database setup failures."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the pool cannot be created."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when the pool opened but could not be configured."""

    def __init__(self, schema: str, cause: BaseException) -> None:
        self.schema = schema
        super().__init__(f"cannot switch to database schema {schema!r}: {cause}")


def quote_identifier(name: str) -> str:
    """Quote *name* as a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def schema_identifier(name: str) -> str:
    """Render *name* for ``search_path``: bare when lowercase, else quoted.

    Mixed case, spaces and commas make a name quoted, so a comma-separated
    list is taken as a single schema name.
    """
    if _PLAIN_IDENTIFIER.fullmatch(name):
        return name
    return quote_identifier(name)


def needs_schema_switch(schema: str) -> bool:
    """Whether *schema* differs from the server's default search path."""
    return bool(schema) and schema != DEFAULT_DB_SCHEMA


async def connect(config: ServiceConfig) -> asyncpg.Pool:
    """Open the connection pool described by *config*.

    When a non-default schema is configured the search path is switched
    before the pool is handed back, and every connection the pool opens
    later starts with the same search path.

    Args:
        config: Service configuration with a non-empty ``database_url``.

    Returns:
        A ready ``asyncpg.Pool``.

    Raises:
        DatabaseConnectionError: If the pool cannot be created.
        DatabaseConfigurationError: If switching the schema fails. The pool
            is closed before the error propagates.
    """
    if not config.database_url:
        raise DatabaseConnectionError("database URL is empty")

    schema = config.database_schema
    server_settings: dict[str, str] = {}
    if needs_schema_switch(schema):
        server_settings["search_path"] = schema_identifier(schema)

    try:
        pool = await asyncpg.create_pool(
            config.database_url,
            min_size=config.database_pool_min,
            max_size=config.database_pool_max,
            server_settings=server_settings or None,
        )
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        raise DatabaseConnectionError(f"cannot create connection pool: {exc}") from exc

    if needs_schema_switch(schema):
        try:
            await pool.execute(f"SET search_path TO {schema_identifier(schema)}")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            await pool.close()
            raise DatabaseConfigurationError(schema, exc) from exc
        logger.debug("Switched database schema: schema=%s", schema)

    return pool
