"""
Database Layer for the SpeechKarma statement archive

Provides:
- PostgreSQL schema (schema.sql)
- StatementStore abstraction (InMemory for dev, Postgres for prod)
- Connection configuration
"""

from pathlib import Path

from .store import (
    StatementStore,
    InMemoryStatementStore,
    PostgresStatementStore,
    StatementQuery,
    StoreError,
    StoreTimeoutError,
)
from .config import DatabaseConfig, StoreDriver, get_database_url, get_store_driver

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

__all__ = [
    "StatementStore",
    "InMemoryStatementStore",
    "PostgresStatementStore",
    "StatementQuery",
    "StoreError",
    "StoreTimeoutError",
    "DatabaseConfig",
    "StoreDriver",
    "get_database_url",
    "get_store_driver",
    "SCHEMA_PATH",
]
