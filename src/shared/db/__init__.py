"""Database connection pool factory."""

from src.shared.db.connection import (
    DatabaseConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    connect,
)

__all__ = [
    "DatabaseConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "connect",
]
