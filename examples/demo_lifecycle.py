"""
Demonstration: Complete Statement Lifecycle

This example walks one statement through the archive: it is recorded,
listed, corrected inside the grace period, refused a correction once
the window has closed, and finally a second statement is deleted.

Time is simulated, so the demo runs instantly.

Run with: python -m examples.demo_lifecycle
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from reference.loader import load_reference_data
from speechkarma.core import Forbidden, NotFound, StatementService, ValidationError
from speechkarma.db import InMemoryStatementStore
from speechkarma.schemas import (
    AuthorSummary,
    CreateStatementCommand,
    TimeRange,
    UpdateStatementCommand,
)


class DemoClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def banner(title: str) -> None:
    print()
    print("=" * 60)
    print(title)
    print("=" * 60)


def main():
    banner("SpeechKarma - Statement Lifecycle Demonstration")

    store = InMemoryStatementStore()
    reference = load_reference_data(store, verbose=False)
    politician_id = reference.politicians["POL-001"]

    clock = DemoClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))
    service = StatementService(store, clock=clock)

    author_id = uuid4()
    other_id = uuid4()
    store.save_profile(AuthorSummary(id=author_id, display_name="Demo Contributor"))
    store.save_profile(AuthorSummary(id=other_id, display_name="Another Contributor"))

    print(f"Politician: {politician_id}")
    print(f"Author:     {author_id}")

    # ================================================================
    # STEP 1: RECORD
    # ================================================================
    banner("STEP 1: RECORD A STATEMENT")

    created = service.create_statement(
        CreateStatementCommand(
            politician_id=politician_id,
            statement_text="We will build 500,000 new homes by the end of this term.",
            occurred_at="2026-03-15T09:30:00Z",
        ),
        caller_id=author_id,
    )
    print(f"[OK] Recorded {created.id}")
    print(f"  Politician: {created.politician.full_name} ({created.politician.party.abbreviation})")
    print(f"  Recorded by: {created.created_by.display_name}")
    print(f"  can_edit={created.can_edit} can_delete={created.can_delete}")

    try:
        service.create_statement(
            CreateStatementCommand(
                politician_id=politician_id,
                statement_text="Too short",
                occurred_at="2026-03-15T09:30:00Z",
            ),
            caller_id=author_id,
        )
    except ValidationError as e:
        print(f"[OK] Rejected short statement: {e.message}")

    # ================================================================
    # STEP 2: READ
    # ================================================================
    banner("STEP 2: LIST AND VIEW")

    feed = service.list_statements(caller_id=None)
    print(f"Global feed: {feed.pagination.total} statement(s)")
    anonymous = feed.data[0]
    print(f"  As anonymous: can_edit={anonymous.can_edit}")

    timeline = service.list_politician_statements(
        politician_id, time_range=TimeRange.LAST_7_DAYS, caller_id=other_id
    )
    print(f"Politician timeline (7d): {timeline.pagination.total} statement(s)")
    print(f"  As another contributor: can_edit={timeline.data[0].can_edit}")

    # ================================================================
    # STEP 3: CORRECT INSIDE THE GRACE PERIOD
    # ================================================================
    banner("STEP 3: CORRECT A MISTAKE (t + 10 min)")

    clock.advance(minutes=10)
    updated = service.update_statement(
        created.id,
        UpdateStatementCommand(
            statement_text="We will build 500,000 new affordable homes by the end of this term."
        ),
        caller_id=author_id,
    )
    print(f"[OK] Updated: {updated.statement_text}")

    try:
        service.update_statement(
            created.id,
            UpdateStatementCommand(statement_text="Someone else's rewrite of the statement."),
            caller_id=other_id,
        )
    except Forbidden as e:
        print(f"[OK] Other contributor refused: {e.reason}")

    # ================================================================
    # STEP 4: THE WINDOW CLOSES
    # ================================================================
    banner("STEP 4: GRACE PERIOD EXPIRES (t + 15 min)")

    clock.advance(minutes=5)
    detail = service.get_statement(created.id, caller_id=author_id)
    print(f"Author can still edit: {detail.can_edit}")
    try:
        service.delete_statement(created.id, caller_id=author_id)
    except Forbidden as e:
        print(f"[OK] Delete refused: {e.reason}")

    # ================================================================
    # STEP 5: SOFT DELETE
    # ================================================================
    banner("STEP 5: SOFT DELETE A FRESH STATEMENT")

    fresh = service.create_statement(
        CreateStatementCommand(
            politician_id=politician_id,
            statement_text="Taxes on small businesses will not rise next year.",
            occurred_at=clock.now - timedelta(hours=1),
        ),
        caller_id=author_id,
    )
    receipt = service.delete_statement(fresh.id, caller_id=author_id)
    print(f"[OK] Deleted {receipt.id} at {receipt.deleted_at.isoformat()}")

    try:
        service.get_statement(fresh.id)
    except NotFound as e:
        print(f"[OK] Detail read: {e.message}")

    try:
        service.delete_statement(fresh.id, caller_id=author_id)
    except Forbidden as e:
        print(f"[OK] Second delete refused: {e.reason}")

    feed = service.list_statements()
    print(f"Global feed now: {feed.pagination.total} statement(s)")
    print(f"Rows kept in storage: {store.statement_count}")

    banner("Demonstration complete")


if __name__ == "__main__":
    main()
