"""
Shared Statement Service

Builds the store and the StatementService the application runs with.
Supports both in-memory (development) and PostgreSQL (production) modes.

Mode is determined by environment variables:
- STATEMENT_STORE_DRIVER: Explicit driver selection (memory, psycopg2)
- DATABASE_URL or DATABASE_HOST: Database connection (auto-selects psycopg2)
- Neither set: Use in-memory (default for development)

SEEDING:
- Auto-seeding is DISABLED by default
- Set ENABLE_AUTO_SEED=1 to load reference/politicians.json on startup
- For production, seed via `python -m tools.manage seed-reference` instead
"""

import os
from threading import Lock
from typing import Optional

import psycopg2

from speechkarma.core import StatementConfig, StatementService
from speechkarma.db import (
    DatabaseConfig,
    InMemoryStatementStore,
    PostgresStatementStore,
    StatementStore,
    StoreDriver,
    get_database_url,
    get_store_driver,
)
from speechkarma.observability import get_logger

logger = get_logger(__name__)

# Seed lock to prevent race conditions in multi-worker scenarios
_seed_lock = Lock()
_seed_attempted = False


def create_statement_store() -> StatementStore:
    """
    Create the appropriate StatementStore based on configuration.

    Returns:
        InMemoryStatementStore for development/testing
        PostgresStatementStore for production (when a database is configured)
    """
    driver = get_store_driver()

    if driver == StoreDriver.MEMORY:
        logger.info("Using in-memory statement store (no persistence)")
        return InMemoryStatementStore()

    db_url = get_database_url()
    if db_url is None:
        logger.warning(
            "Store driver needs a database but none is configured, using in-memory store",
            driver=driver.value,
        )
        return InMemoryStatementStore()

    config = DatabaseConfig.from_url(db_url) if "://" in db_url else DatabaseConfig.from_env()
    return _create_psycopg2_store(config)


def _create_psycopg2_store(config: DatabaseConfig) -> StatementStore:
    """Create PostgresStatementStore with psycopg2."""
    def connection_factory():
        return psycopg2.connect(config.to_dsn())

    # Fail fast on bad credentials instead of on the first request
    test_conn = connection_factory()
    test_conn.close()

    logger.info(
        "PostgreSQL statement store connected",
        database=config.to_url(include_password=False),
    )
    return PostgresStatementStore(
        connection_factory,
        statement_timeout_ms=config.statement_timeout_ms,
    )


def create_statement_service(
    store: Optional[StatementStore] = None,
    config: Optional[StatementConfig] = None,
) -> StatementService:
    """
    Build the StatementService from the environment.

    Args:
        store: Existing store; created from the environment if None
        config: Engine configuration; StatementConfig.from_env() if None
    """
    config = config or StatementConfig.from_env()
    store = store if store is not None else create_statement_store()

    augmentation = config.augmentation
    if augmentation.enabled and not augmentation.api_key:
        logger.warning(
            "USE_AI_SUMMARY is on but OPENROUTER_API_KEY is not set, "
            "statements will be stored without summaries"
        )
    logger.info(
        "Statement service ready",
        store=type(store).__name__,
        grace_period_seconds=int(config.grace_period.total_seconds()),
        augmentation_enabled=augmentation.enabled,
    )
    return StatementService(store, config=config)


def seed_reference_data(store: StatementStore) -> None:
    """
    Seed the store with reference politicians.

    SAFETY RULES:
    - Disabled by default - set ENABLE_AUTO_SEED=1 to enable
    - Only runs once per process (prevents race conditions)
    - Rows are upserted by stable id, so re-running is harmless
    """
    global _seed_attempted

    if os.getenv("ENABLE_AUTO_SEED", "").lower() not in ("1", "true", "yes"):
        logger.debug("Auto-seeding disabled (set ENABLE_AUTO_SEED=1 to enable)")
        return

    with _seed_lock:
        if _seed_attempted:
            return
        _seed_attempted = True

        from reference.loader import load_reference_data

        result = load_reference_data(store, verbose=False)
        logger.info(
            "Reference data seeded",
            parties=len(result.parties),
            politicians=len(result.politicians),
            contributors=len(result.contributors),
            errors=len(result.errors),
        )
