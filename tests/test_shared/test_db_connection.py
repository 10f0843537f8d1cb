"""Tests for the asyncpg pool factory."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from src.shared.config import ServiceConfig
from src.shared.db.connection import (
    DatabaseConfigurationError,
    DatabaseConnectionError,
    connect,
    needs_schema_switch,
    quote_identifier,
    schema_identifier,
)

DSN = "postgresql://app:secret@db:5432/app"


class TestHelpers:
    def test_quote_identifier(self):
        assert quote_identifier("reporting") == '"reporting"'

    def test_quote_identifier_escapes_quotes(self):
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_public_needs_no_switch(self):
        assert needs_schema_switch("public") is False

    def test_empty_needs_no_switch(self):
        assert needs_schema_switch("") is False

    def test_other_schema_needs_switch(self):
        assert needs_schema_switch("reporting") is True

    def test_lowercase_schema_unquoted(self):
        assert schema_identifier("reporting_v2") == "reporting_v2"

    def test_mixed_case_schema_quoted(self):
        assert schema_identifier("Reporting") == '"Reporting"'

    def test_list_taken_as_one_name(self):
        assert schema_identifier("a, b") == '"a, b"'


class TestConnect:
    @pytest.mark.asyncio
    async def test_empty_url_rejected(self):
        with pytest.raises(DatabaseConnectionError):
            await connect(ServiceConfig(database_url=""))

    @pytest.mark.asyncio
    async def test_public_schema_returns_pool_as_is(self, mock_pool: MagicMock):
        with patch("asyncpg.create_pool", AsyncMock(return_value=mock_pool)) as create:
            pool = await connect(ServiceConfig(database_url=DSN, database_schema="public"))

        assert pool is mock_pool
        mock_pool.execute.assert_not_awaited()
        assert create.await_args.kwargs["server_settings"] is None

    @pytest.mark.asyncio
    async def test_pool_sizes_passed(self, mock_pool: MagicMock):
        config = ServiceConfig(database_url=DSN, database_pool_min=2, database_pool_max=7)
        with patch("asyncpg.create_pool", AsyncMock(return_value=mock_pool)) as create:
            await connect(config)

        assert create.await_args.args == (DSN,)
        assert create.await_args.kwargs["min_size"] == 2
        assert create.await_args.kwargs["max_size"] == 7

    @pytest.mark.asyncio
    async def test_custom_schema_switched_before_return(self, mock_pool: MagicMock):
        with patch("asyncpg.create_pool", AsyncMock(return_value=mock_pool)) as create:
            pool = await connect(ServiceConfig(database_url=DSN, database_schema="reporting"))

        assert pool is mock_pool
        mock_pool.execute.assert_awaited_once_with("SET search_path TO reporting")
        assert create.await_args.kwargs["server_settings"] == {"search_path": "reporting"}

    @pytest.mark.asyncio
    async def test_schema_switch_failure_closes_pool(self, mock_pool: MagicMock):
        mock_pool.execute.side_effect = asyncpg.PostgresError("permission denied")
        with patch("asyncpg.create_pool", AsyncMock(return_value=mock_pool)):
            with pytest.raises(DatabaseConfigurationError) as exc_info:
                await connect(ServiceConfig(database_url=DSN, database_schema="reporting"))

        mock_pool.close.assert_awaited_once()
        assert exc_info.value.schema == "reporting"
        assert "reporting" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, asyncpg.PostgresError)

    @pytest.mark.asyncio
    async def test_pool_creation_failure(self):
        with patch("asyncpg.create_pool", AsyncMock(side_effect=OSError("connection refused"))):
            with pytest.raises(DatabaseConnectionError) as exc_info:
                await connect(ServiceConfig(database_url=DSN))

        assert "connection refused" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_mixed_case_schema_quoted_in_statement(self, mock_pool: MagicMock):
        with patch("asyncpg.create_pool", AsyncMock(return_value=mock_pool)):
            await connect(ServiceConfig(database_url=DSN, database_schema="Reporting"))
        mock_pool.execute.assert_awaited_once_with('SET search_path TO "Reporting"')
