"""
Statement Store Abstraction

This module defines the StatementStore interface and provides two implementations:
- InMemoryStatementStore: For development and testing
- PostgresStatementStore: For production with durability

The StatementStore is responsible for:
- Single-row atomic insert and update of statement rows
- Filtered, ordered, paginated reads of live (non-tombstoned) rows
- Batched lookups of politician and author display data

The StatementService retains responsibility for:
- Ownership and grace period rules
- Input validation
- Composing rows with their lookups into the enriched shape

READ CONTRACT:
count_statements() and list_statements() never return tombstoned rows.
get_statement() returns the row whatever its state, because the mutation
paths need to tell "deleted" apart from "never existed".

CONCURRENCY:
No multi-row transaction is offered. Two concurrent updates of the same
row are resolved by the backend's own single-row atomicity (last write
wins). Callers get no optimistic-concurrency token.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Generator, Iterable, Optional
from uuid import UUID

import psycopg2

from ..schemas import (
    AuthorSummary,
    PartySummary,
    PoliticianSummary,
    SortField,
    SortOrder,
    Statement,
)


# ============================================================
# EXCEPTIONS
# ============================================================

class StoreError(Exception):
    """Base exception for statement store errors."""
    pass


class StoreTimeoutError(StoreError):
    """Raised when the backend cancels a query for running too long."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

# Columns callers may change through update_statement().
UPDATABLE_COLUMNS = frozenset({"statement_text", "occurred_at", "updated_at", "deleted_at"})


@dataclass(frozen=True)
class StatementQuery:
    """
    Filter and ordering for statement listings.

    Tombstoned rows are always excluded; there is no flag to include them.
    """
    politician_id: Optional[UUID] = None
    recorded_since: Optional[datetime] = None
    sort_by: SortField = SortField.RECORDED_AT
    order: SortOrder = SortOrder.DESC


def _check_columns(changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_COLUMNS
    if unknown:
        raise StoreError(f"Cannot update columns: {sorted(unknown)}")


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class StatementStore(ABC):
    """
    Abstract base class for statement storage.

    Implementations must ensure:
    1. insert_statement and update_statement are atomic per row
    2. Listing reads exclude rows with deleted_at set
    3. Listing order is total (ties broken by id) so pages never overlap
    """

    @abstractmethod
    def insert_statement(self, statement: Statement) -> Statement:
        """
        Insert a new statement row.

        Returns:
            The row as stored
        """
        pass

    @abstractmethod
    def get_statement(self, statement_id: UUID) -> Optional[Statement]:
        """Fetch a row by id, including tombstoned rows. None if absent."""
        pass

    @abstractmethod
    def update_statement(
        self,
        statement_id: UUID,
        changes: dict[str, Any],
    ) -> Optional[Statement]:
        """
        Apply a partial column update to one row.

        Args:
            statement_id: Row to update
            changes: Column -> new value, limited to UPDATABLE_COLUMNS

        Returns:
            The updated row, or None if the row does not exist
        """
        pass

    @abstractmethod
    def count_statements(self, query: StatementQuery) -> int:
        """Count live rows matching the query."""
        pass

    @abstractmethod
    def list_statements(
        self,
        query: StatementQuery,
        offset: int,
        limit: int,
    ) -> list[Statement]:
        """List live rows matching the query, ordered and sliced."""
        pass

    @abstractmethod
    def politician_exists(self, politician_id: UUID) -> bool:
        pass

    @abstractmethod
    def get_politicians(self, politician_ids: Iterable[UUID]) -> dict[UUID, PoliticianSummary]:
        """Batch lookup of politician display data. Missing ids are omitted."""
        pass

    @abstractmethod
    def get_profiles(self, author_ids: Iterable[UUID]) -> dict[UUID, AuthorSummary]:
        """Batch lookup of author display data. Missing ids are omitted."""
        pass

    @abstractmethod
    def save_party(self, party: PartySummary) -> None:
        """Insert or replace a party (reference data seeding)."""
        pass

    @abstractmethod
    def save_politician(self, politician: PoliticianSummary) -> None:
        """Insert or replace a politician (reference data seeding)."""
        pass

    @abstractmethod
    def save_profile(self, profile: AuthorSummary) -> None:
        """Insert or replace an author profile."""
        pass

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreError if the backend is unreachable."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryStatementStore(StatementStore):
    """
    In-memory implementation of StatementStore.

    Suitable for:
    - Development
    - Testing
    - Single-instance demos

    NOT suitable for:
    - Production (no durability)
    - Multi-instance deployments (no shared state)
    """

    def __init__(self):
        self._statements: dict[UUID, Statement] = {}
        self._parties: dict[UUID, PartySummary] = {}
        self._politicians: dict[UUID, PoliticianSummary] = {}
        self._profiles: dict[UUID, AuthorSummary] = {}
        self._lock = Lock()

    def insert_statement(self, statement: Statement) -> Statement:
        with self._lock:
            if statement.id in self._statements:
                raise StoreError(f"Statement {statement.id} already exists")
            if statement.politician_id not in self._politicians:
                raise StoreError(f"Politician {statement.politician_id} does not exist")
            self._statements[statement.id] = statement.model_copy()
            return statement.model_copy()

    def get_statement(self, statement_id: UUID) -> Optional[Statement]:
        row = self._statements.get(statement_id)
        return row.model_copy() if row is not None else None

    def update_statement(
        self,
        statement_id: UUID,
        changes: dict[str, Any],
    ) -> Optional[Statement]:
        _check_columns(changes)
        with self._lock:
            row = self._statements.get(statement_id)
            if row is None:
                return None
            updated = row.model_copy(update=changes)
            self._statements[statement_id] = updated
            return updated.model_copy()

    def _matching(self, query: StatementQuery) -> list[Statement]:
        rows = [
            row for row in self._statements.values()
            if row.deleted_at is None
            and (query.politician_id is None or row.politician_id == query.politician_id)
            and (query.recorded_since is None or row.recorded_at >= query.recorded_since)
        ]
        sort_column = query.sort_by.value
        return sorted(
            rows,
            key=lambda row: (getattr(row, sort_column), str(row.id)),
            reverse=query.order == SortOrder.DESC,
        )

    def count_statements(self, query: StatementQuery) -> int:
        with self._lock:
            return len(self._matching(query))

    def list_statements(
        self,
        query: StatementQuery,
        offset: int,
        limit: int,
    ) -> list[Statement]:
        with self._lock:
            rows = self._matching(query)[offset:offset + limit]
            return [row.model_copy() for row in rows]

    def politician_exists(self, politician_id: UUID) -> bool:
        return politician_id in self._politicians

    def get_politicians(self, politician_ids: Iterable[UUID]) -> dict[UUID, PoliticianSummary]:
        return {
            pid: self._politicians[pid]
            for pid in set(politician_ids)
            if pid in self._politicians
        }

    def get_profiles(self, author_ids: Iterable[UUID]) -> dict[UUID, AuthorSummary]:
        return {
            aid: self._profiles[aid]
            for aid in set(author_ids)
            if aid in self._profiles
        }

    def save_party(self, party: PartySummary) -> None:
        with self._lock:
            self._parties[party.id] = party
            # Keep embedded party data on politicians current
            for pid, politician in self._politicians.items():
                if politician.party.id == party.id:
                    self._politicians[pid] = politician.model_copy(update={"party": party})

    def save_politician(self, politician: PoliticianSummary) -> None:
        with self._lock:
            self._parties.setdefault(politician.party.id, politician.party)
            self._politicians[politician.id] = politician

    def save_profile(self, profile: AuthorSummary) -> None:
        with self._lock:
            self._profiles[profile.id] = profile

    def ping(self) -> None:
        return None

    @property
    def statement_count(self) -> int:
        """Total rows held, tombstoned included."""
        return len(self._statements)

    def clear(self) -> None:
        """Clear all data (for testing only)."""
        with self._lock:
            self._statements.clear()
            self._parties.clear()
            self._politicians.clear()
            self._profiles.clear()


# ============================================================
# POSTGRESQL IMPLEMENTATION
# ============================================================

STATEMENT_COLUMNS = (
    "id, politician_id, author_id, statement_text, "
    "occurred_at, recorded_at, updated_at, deleted_at"
)


class PostgresStatementStore(StatementStore):
    """
    PostgreSQL implementation of StatementStore.

    Provides:
    - Durability (statements survive restarts)
    - Multi-instance support (shared database)
    - Statement timeouts to prevent hanging

    THREAD SAFETY:
    Every call opens its own connection from the factory, so one store
    instance can be shared across request threads.

    Requirements:
    - Tables created from schema.sql
    - psycopg2 for connection

    Usage:
        store = PostgresStatementStore(lambda: psycopg2.connect(dsn))
    """

    STATEMENT_TIMEOUT_MS = 10000  # 10 seconds

    # psycopg2 error code for statement timeout
    PGCODE_QUERY_CANCELED = '57014'

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        """
        Initialize PostgreSQL statement store.

        Args:
            connection_factory: Callable that returns a psycopg2 connection.
            statement_timeout_ms: Max statement execution time (ms). Default 10000.
        """
        self._connection_factory = connection_factory
        self._statement_timeout_ms = int(statement_timeout_ms)

    @contextmanager
    def _cursor(self) -> Generator[Any, None, None]:
        """
        Run a block inside one transaction on a fresh connection.

        Commits on success, rolls back on error, always closes.
        psycopg2 errors are translated into StoreError.
        """
        try:
            conn = self._connection_factory()
        except psycopg2.Error as e:
            raise StoreError(f"Could not connect to database: {e}") from e

        cursor = conn.cursor()
        try:
            # SET LOCAL keeps the timeout scoped to this transaction
            cursor.execute(f"SET LOCAL statement_timeout = '{self._statement_timeout_ms}ms'")
            yield cursor
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            if getattr(e, "pgcode", None) == self.PGCODE_QUERY_CANCELED:
                raise StoreTimeoutError("Query timed out - statement took too long.") from e
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            try:
                cursor.close()
            finally:
                conn.close()

    def insert_statement(self, statement: Statement) -> Statement:
        with self._cursor() as cursor:
            cursor.execute(f"""
                INSERT INTO statements (
                    id,
                    politician_id,
                    author_id,
                    statement_text,
                    occurred_at,
                    recorded_at,
                    updated_at,
                    deleted_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {STATEMENT_COLUMNS}
            """, (
                str(statement.id),
                str(statement.politician_id),
                str(statement.author_id),
                statement.statement_text,
                statement.occurred_at,
                statement.recorded_at,
                statement.updated_at,
                statement.deleted_at,
            ))
            return self._row_to_statement(cursor.fetchone())

    def get_statement(self, statement_id: UUID) -> Optional[Statement]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {STATEMENT_COLUMNS} FROM statements WHERE id = %s",
                (str(statement_id),),
            )
            row = cursor.fetchone()
            return self._row_to_statement(row) if row else None

    def update_statement(
        self,
        statement_id: UUID,
        changes: dict[str, Any],
    ) -> Optional[Statement]:
        _check_columns(changes)
        if not changes:
            return self.get_statement(statement_id)

        # Column names come from UPDATABLE_COLUMNS only
        columns = sorted(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = [changes[column] for column in columns]

        with self._cursor() as cursor:
            cursor.execute(
                f"UPDATE statements SET {assignments} WHERE id = %s RETURNING {STATEMENT_COLUMNS}",
                (*params, str(statement_id)),
            )
            row = cursor.fetchone()
            return self._row_to_statement(row) if row else None

    @staticmethod
    def _where(query: StatementQuery) -> tuple[str, list[Any]]:
        clauses = ["deleted_at IS NULL"]
        params: list[Any] = []
        if query.politician_id is not None:
            clauses.append("politician_id = %s")
            params.append(str(query.politician_id))
        if query.recorded_since is not None:
            clauses.append("recorded_at >= %s")
            params.append(query.recorded_since)
        return " AND ".join(clauses), params

    def count_statements(self, query: StatementQuery) -> int:
        where, params = self._where(query)
        with self._cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) FROM statements WHERE {where}", params)
            return cursor.fetchone()[0]

    def list_statements(
        self,
        query: StatementQuery,
        offset: int,
        limit: int,
    ) -> list[Statement]:
        where, params = self._where(query)
        # Both identifiers come from enums, never from raw input
        column = SortField(query.sort_by).value
        direction = "ASC" if query.order == SortOrder.ASC else "DESC"

        with self._cursor() as cursor:
            cursor.execute(f"""
                SELECT {STATEMENT_COLUMNS}
                FROM statements
                WHERE {where}
                ORDER BY {column} {direction}, id {direction}
                LIMIT %s OFFSET %s
            """, (*params, limit, offset))
            return [self._row_to_statement(row) for row in cursor.fetchall()]

    def politician_exists(self, politician_id: UUID) -> bool:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM politicians WHERE id = %s", (str(politician_id),))
            return cursor.fetchone() is not None

    def get_politicians(self, politician_ids: Iterable[UUID]) -> dict[UUID, PoliticianSummary]:
        ids = sorted({str(pid) for pid in politician_ids})
        if not ids:
            return {}

        with self._cursor() as cursor:
            cursor.execute("""
                SELECT
                    p.id, p.first_name, p.last_name,
                    pa.id, pa.name, pa.abbreviation, pa.color_hex
                FROM politicians p
                JOIN parties pa ON pa.id = p.party_id
                WHERE p.id = ANY(%s::uuid[])
            """, (ids,))

            result = {}
            for row in cursor.fetchall():
                politician = PoliticianSummary(
                    id=UUID(str(row[0])),
                    first_name=row[1],
                    last_name=row[2],
                    party=PartySummary(
                        id=UUID(str(row[3])),
                        name=row[4],
                        abbreviation=row[5],
                        color_hex=row[6],
                    ),
                )
                result[politician.id] = politician
            return result

    def get_profiles(self, author_ids: Iterable[UUID]) -> dict[UUID, AuthorSummary]:
        ids = sorted({str(aid) for aid in author_ids})
        if not ids:
            return {}

        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, display_name FROM profiles WHERE id = ANY(%s::uuid[])",
                (ids,),
            )
            return {
                UUID(str(row[0])): AuthorSummary(id=UUID(str(row[0])), display_name=row[1])
                for row in cursor.fetchall()
            }

    def save_party(self, party: PartySummary) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO parties (id, name, abbreviation, color_hex)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    abbreviation = EXCLUDED.abbreviation,
                    color_hex = EXCLUDED.color_hex
            """, (str(party.id), party.name, party.abbreviation, party.color_hex))

    def save_politician(self, politician: PoliticianSummary) -> None:
        self.save_party(politician.party)
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO politicians (id, first_name, last_name, party_id)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    first_name = EXCLUDED.first_name,
                    last_name = EXCLUDED.last_name,
                    party_id = EXCLUDED.party_id
            """, (
                str(politician.id),
                politician.first_name,
                politician.last_name,
                str(politician.party.id),
            ))

    def save_profile(self, profile: AuthorSummary) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO profiles (id, display_name)
                VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE SET display_name = EXCLUDED.display_name
            """, (str(profile.id), profile.display_name))

    def ping(self) -> None:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()

    @staticmethod
    def _row_to_statement(row: tuple) -> Statement:
        """Convert a database row to a Statement."""
        return Statement(
            id=UUID(str(row[0])),
            politician_id=UUID(str(row[1])),
            author_id=UUID(str(row[2])),
            statement_text=row[3],
            occurred_at=row[4],
            recorded_at=row[5],
            updated_at=row[6],
            deleted_at=row[7],
        )
