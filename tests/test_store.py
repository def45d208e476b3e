"""
Tests for the statement stores.

The in-memory store is exercised directly. The PostgreSQL store runs
against a fake psycopg2 connection that records the SQL it is sent.
"""

from datetime import timedelta
from uuid import uuid4

import psycopg2
import pytest

from speechkarma.db import (
    InMemoryStatementStore,
    PostgresStatementStore,
    StatementQuery,
    StoreError,
    StoreTimeoutError,
)
from speechkarma.schemas import SortField, SortOrder, Statement

from conftest import T0


def make_statement(politician_id, author_id, recorded_at=T0, **overrides) -> Statement:
    values = dict(
        id=uuid4(),
        politician_id=politician_id,
        author_id=author_id,
        statement_text="A statement long enough to store.",
        occurred_at=recorded_at - timedelta(hours=1),
        recorded_at=recorded_at,
        updated_at=recorded_at,
    )
    values.update(overrides)
    return Statement(**values)


class TestInMemoryStore:

    @pytest.fixture
    def row(self, politician, author):
        return make_statement(politician.id, author.id)

    def test_insert_and_get(self, store, row):
        store.insert_statement(row)
        assert store.get_statement(row.id) == row

    def test_duplicate_id_rejected(self, store, row):
        store.insert_statement(row)
        with pytest.raises(StoreError):
            store.insert_statement(row)

    def test_unknown_politician_rejected(self, store, author):
        with pytest.raises(StoreError):
            store.insert_statement(make_statement(uuid4(), author.id))

    def test_returned_rows_are_copies(self, store, row):
        """Mutating a returned row never changes what is stored."""
        store.insert_statement(row)
        fetched = store.get_statement(row.id)
        fetched.statement_text = "changed outside the store"
        assert store.get_statement(row.id).statement_text == row.statement_text

    def test_update_applies_changes(self, store, row):
        store.insert_statement(row)
        updated = store.update_statement(row.id, {"statement_text": "Replacement text here."})
        assert updated.statement_text == "Replacement text here."
        assert updated.recorded_at == row.recorded_at

    def test_update_missing_row(self, store):
        assert store.update_statement(uuid4(), {"statement_text": "anything"}) is None

    def test_update_refuses_immutable_columns(self, store, row, other_user):
        store.insert_statement(row)
        with pytest.raises(StoreError):
            store.update_statement(row.id, {"author_id": other_user.id})
        with pytest.raises(StoreError):
            store.update_statement(row.id, {"recorded_at": T0})

    def test_tombstoned_rows_hidden_from_listings(self, store, row):
        store.insert_statement(row)
        store.update_statement(row.id, {"deleted_at": T0})

        query = StatementQuery()
        assert store.count_statements(query) == 0
        assert store.list_statements(query, offset=0, limit=10) == []
        assert store.get_statement(row.id).is_deleted

    def test_filters(self, store, politician, author):
        old = make_statement(politician.id, author.id, recorded_at=T0 - timedelta(days=10))
        new = make_statement(politician.id, author.id)
        store.insert_statement(old)
        store.insert_statement(new)

        query = StatementQuery(politician_id=politician.id, recorded_since=T0 - timedelta(days=7))
        assert [s.id for s in store.list_statements(query, 0, 10)] == [new.id]
        assert store.count_statements(StatementQuery(politician_id=uuid4())) == 0

    def test_order_is_total(self, store, politician, author):
        rows = [make_statement(politician.id, author.id) for _ in range(4)]
        for row in rows:
            store.insert_statement(row)

        ids = [s.id for s in store.list_statements(StatementQuery(order=SortOrder.ASC), 0, 10)]
        assert ids == sorted((row.id for row in rows), key=str)

    def test_lookups_omit_missing(self, store, politician, author):
        missing = uuid4()
        assert set(store.get_politicians([politician.id, missing])) == {politician.id}
        assert set(store.get_profiles([author.id, missing])) == {author.id}
        assert store.politician_exists(politician.id)
        assert not store.politician_exists(missing)

    def test_save_party_refreshes_politicians(self, store, politician, party):
        store.save_party(party.model_copy(update={"name": "Renamed Party"}))
        refreshed = store.get_politicians([politician.id])[politician.id]
        assert refreshed.party.name == "Renamed Party"

    def test_counts_and_clear(self, store, row):
        store.insert_statement(row)
        store.update_statement(row.id, {"deleted_at": T0})
        assert store.statement_count == 1
        store.clear()
        assert store.statement_count == 0
        assert not store.politician_exists(row.politician_id)


# ============================================================
# FAKE PSYCOPG2 CONNECTION
# ============================================================

class FakeCursor:
    def __init__(self, conn):
        self._conn = conn
        self.closed = False

    def execute(self, sql, params=None):
        self._conn.executed.append((" ".join(sql.split()), params))
        if self._conn.fail_on and self._conn.fail_on in sql:
            raise self._conn.error

    def fetchone(self):
        return self._conn.results.pop(0) if self._conn.results else None

    def fetchall(self):
        return self._conn.results.pop(0) if self._conn.results else []

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, results=None, fail_on=None, error=None):
        self.results = list(results or [])
        self.fail_on = fail_on
        self.error = error
        self.executed = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class QueryCanceled(psycopg2.Error):
    pgcode = "57014"


def statement_row(statement: Statement) -> tuple:
    return (
        str(statement.id),
        str(statement.politician_id),
        str(statement.author_id),
        statement.statement_text,
        statement.occurred_at,
        statement.recorded_at,
        statement.updated_at,
        statement.deleted_at,
    )


class TestPostgresStore:

    @pytest.fixture
    def row(self, politician, author):
        return make_statement(politician.id, author.id)

    def _store(self, conn, **kwargs):
        return PostgresStatementStore(lambda: conn, **kwargs)

    def test_statement_timeout_scoped_to_transaction(self, row):
        conn = FakeConnection(results=[statement_row(row)])
        self._store(conn, statement_timeout_ms=2500).get_statement(row.id)

        assert conn.executed[0][0] == "SET LOCAL statement_timeout = '2500ms'"
        assert conn.committed
        assert conn.closed

    def test_get_statement_maps_row(self, row):
        conn = FakeConnection(results=[statement_row(row)])
        assert self._store(conn).get_statement(row.id) == row

    def test_get_statement_missing(self):
        conn = FakeConnection()
        assert self._store(conn).get_statement(uuid4()) is None

    def test_insert_returns_stored_row(self, row):
        conn = FakeConnection(results=[statement_row(row)])
        stored = self._store(conn).insert_statement(row)
        assert stored == row
        sql, params = conn.executed[1]
        assert sql.startswith("INSERT INTO statements")
        assert params[0] == str(row.id)

    def test_list_orders_with_id_tiebreak(self):
        conn = FakeConnection(results=[[]])
        query = StatementQuery(sort_by=SortField.OCCURRED_AT, order=SortOrder.ASC)
        self._store(conn).list_statements(query, offset=20, limit=10)

        sql, params = conn.executed[1]
        assert "WHERE deleted_at IS NULL" in sql
        assert "ORDER BY occurred_at ASC, id ASC" in sql
        assert params[-2:] == (10, 20)

    def test_list_filters(self, politician):
        since = T0 - timedelta(days=7)
        conn = FakeConnection(results=[[]])
        query = StatementQuery(politician_id=politician.id, recorded_since=since)
        self._store(conn).list_statements(query, offset=0, limit=50)

        sql, params = conn.executed[1]
        assert "politician_id = %s" in sql
        assert "recorded_at >= %s" in sql
        assert params[:2] == (str(politician.id), since)

    def test_count(self):
        conn = FakeConnection(results=[(7,)])
        assert self._store(conn).count_statements(StatementQuery()) == 7

    def test_update_builds_assignments(self, row):
        conn = FakeConnection(results=[statement_row(row)])
        self._store(conn).update_statement(row.id, {"updated_at": T0, "statement_text": "New text."})

        sql, params = conn.executed[1]
        assert "SET statement_text = %s, updated_at = %s WHERE id = %s" in sql
        assert params == ("New text.", T0, str(row.id))

    def test_update_refuses_immutable_columns(self, row):
        conn = FakeConnection()
        with pytest.raises(StoreError):
            self._store(conn).update_statement(row.id, {"author_id": uuid4()})
        assert conn.executed == []

    def test_empty_lookups_skip_the_database(self):
        conn = FakeConnection()
        store = self._store(conn)
        assert store.get_politicians([]) == {}
        assert store.get_profiles([]) == {}
        assert conn.executed == []

    def test_get_politicians_maps_party(self, politician, party):
        conn = FakeConnection(results=[[(
            str(politician.id), politician.first_name, politician.last_name,
            str(party.id), party.name, party.abbreviation, party.color_hex,
        )]])
        result = self._store(conn).get_politicians([politician.id])
        assert result[politician.id] == politician

    def test_database_error_becomes_store_error(self, row):
        conn = FakeConnection(fail_on="SELECT", error=psycopg2.OperationalError("server closed"))
        with pytest.raises(StoreError) as exc_info:
            self._store(conn).get_statement(row.id)
        assert not isinstance(exc_info.value, StoreTimeoutError)
        assert conn.rolled_back
        assert conn.closed

    def test_query_cancel_becomes_timeout(self, row):
        conn = FakeConnection(fail_on="SELECT", error=QueryCanceled("canceling statement"))
        with pytest.raises(StoreTimeoutError):
            self._store(conn).get_statement(row.id)

    def test_connect_failure(self):
        def refuse():
            raise psycopg2.OperationalError("could not connect")

        with pytest.raises(StoreError, match="Could not connect"):
            PostgresStatementStore(refuse).ping()
