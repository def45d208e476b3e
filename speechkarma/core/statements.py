"""
Statement Service - The Lifecycle and Permission Engine

Every rule about statements lives here. The store persists rows, the
identity layer names the caller, the augmentation client writes
summaries; none of them decide anything.

Lifecycle (per statement):
- Mutable-by-owner: now - recorded_at < grace_period and not deleted
- Immutable: the window has elapsed, or the statement is deleted
Nothing moves a statement back from Immutable.

Rules (enforced in code):
- Writes require a verified caller; the author is always that caller
- Body length is checked on the stripped text (minimum) and raw text (maximum)
- occurred_at must be timezone-aware and not in the future
- Only the author may update or delete, and only inside the grace window
- Deleting twice is an error, not a no-op
- Tombstoned statements are invisible to every read
- Augmentation is best-effort: any failure leaves the body exactly as given

ARCHITECTURE NOTE:
Reads are a two-step composition. Statement rows are fetched first, then
the referenced politicians and authors are resolved in one batched lookup
each and merged in memory. The service never relies on the store being
able to join.

CONCURRENCY:
Update and delete are check-then-write with no version token. Two racing
requests on the same statement are resolved by the store's single-row
atomicity, so the last write wins.
"""

import math
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Generator, Optional, Type, TypeVar
from uuid import UUID, uuid4

from ..db.store import StatementQuery, StatementStore, StoreError
from ..observability import MetricsCollector, get_logger, get_metrics
from ..schemas import (
    AuthorSummary,
    CreateStatementCommand,
    DeletedStatement,
    PaginatedStatements,
    Pagination,
    SortField,
    SortOrder,
    Statement,
    StatementDetail,
    TimeRange,
    UpdateStatementCommand,
)
from .config import StatementConfig
from .errors import (
    AuthenticationRequired,
    Forbidden,
    InternalError,
    NotFound,
    ValidationError,
)
from .openrouter import OpenRouterClient, OpenRouterError
from .permissions import permissions_for, within_grace_window

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)
Clock = Callable[[], datetime]


SUMMARY_DELIMITER = "\n\n---\n\n📝 AI Summary: "

ANONYMOUS_DISPLAY_NAME = "Anonymous contributor"
DISPLAY_NAME_MAX_LENGTH = 100

SUMMARY_SYSTEM_PROMPT = (
    "You are a political analyst. Create very concise, objective summaries of "
    "political statements. Keep summaries to 1-2 sentences maximum. Focus on "
    "the key message or claim."
)

SUMMARY_USER_TEMPLATE = 'Summarize this political statement concisely:\n\n"{text}"'

SUMMARY_RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "statement_summary",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "description": "A concise summary of the political statement in 1-2 sentences",
                },
            },
            "required": ["summary"],
            "additionalProperties": False,
        },
    },
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(field, f"must be one of: {allowed}", value) from None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_display_name(name: Any) -> str:
    """Fit an identity provider display name to the profile column."""
    if not isinstance(name, str) or not name.strip():
        return ANONYMOUS_DISPLAY_NAME
    return name.strip()[:DISPLAY_NAME_MAX_LENGTH]


class StatementService:
    """
    The statement lifecycle engine.

    Usage:
        service = StatementService(InMemoryStatementStore())
        detail = service.create_statement(command, caller_id=user_id)
        page = service.list_statements(page=1, caller_id=None)

    Args:
        store: StatementStore implementation
        config: Engine configuration; StatementConfig() defaults if None
        augmentation_client: Summary client; built from config on first
            use when augmentation is enabled and none is given
        clock: Returns the current time (timezone-aware); injectable for tests
        metrics: MetricsCollector; the process-wide one if None
    """

    def __init__(
        self,
        store: StatementStore,
        config: Optional[StatementConfig] = None,
        augmentation_client: Optional[OpenRouterClient] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._store = store
        self._config = config or StatementConfig()
        self._augmentation_client = augmentation_client
        self._owns_client = False
        self._clock = clock or utc_now
        self._metrics = metrics or get_metrics()

    @property
    def store(self) -> StatementStore:
        return self._store

    @property
    def config(self) -> StatementConfig:
        return self._config

    def close(self) -> None:
        """Release the augmentation client if this service created it."""
        if self._owns_client and self._augmentation_client is not None:
            self._augmentation_client.close()
            self._augmentation_client = None
            self._owns_client = False

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _store_errors(self, operation: str) -> Generator[None, None, None]:
        """Re-raise store failures as InternalError."""
        try:
            yield
        except StoreError as e:
            logger.error(
                "Statement store failure",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise InternalError(f"Failed to {operation}") from e

    # ============================================================
    # VALIDATION
    # ============================================================

    def _validate_text(self, text: Any) -> str:
        if not isinstance(text, str):
            raise ValidationError("statement_text", "is required")
        minimum = self._config.min_text_length
        maximum = self._config.max_text_length
        if len(text.strip()) < minimum:
            raise ValidationError(
                "statement_text", f"must be at least {minimum} characters"
            )
        if len(text) > maximum:
            raise ValidationError(
                "statement_text", f"must be at most {maximum} characters"
            )
        return text

    def _validate_occurred_at(self, value: Any, now: datetime) -> datetime:
        if value is None:
            raise ValidationError("occurred_at", "is required")

        if isinstance(value, datetime):
            occurred_at = value
        elif isinstance(value, str):
            raw = value.strip()
            if raw.endswith(("Z", "z")):
                raw = raw[:-1] + "+00:00"
            try:
                occurred_at = datetime.fromisoformat(raw)
            except ValueError:
                raise ValidationError(
                    "occurred_at", "must be an ISO 8601 timestamp", value
                ) from None
        else:
            raise ValidationError("occurred_at", "must be an ISO 8601 timestamp")

        if occurred_at.tzinfo is None or occurred_at.utcoffset() is None:
            raise ValidationError("occurred_at", "must include a timezone", str(value))

        occurred_at = occurred_at.astimezone(timezone.utc)
        if occurred_at > now:
            raise ValidationError(
                "occurred_at", "cannot be in the future", occurred_at.isoformat()
            )
        return occurred_at

    def _validate_paging(self, page: Any, limit: Any) -> tuple[int, int]:
        if limit is None:
            limit = self._config.default_page_size
        if not _is_int(page) or page < 1:
            raise ValidationError("page", "must be an integer of at least 1", page)
        maximum = self._config.max_page_size
        if not _is_int(limit) or not 1 <= limit <= maximum:
            raise ValidationError("limit", f"must be an integer between 1 and {maximum}", limit)
        return page, limit

    def _check_mutable(
        self,
        statement: Statement,
        caller_id: UUID,
        now: datetime,
        deleted_reason: str,
    ) -> None:
        if statement.is_deleted:
            raise Forbidden(deleted_reason)
        if statement.author_id != caller_id:
            raise Forbidden("not owner")
        if not within_grace_window(statement.recorded_at, now, self._config.grace_period):
            raise Forbidden("grace period expired")

    # ============================================================
    # ENRICHMENT
    # ============================================================

    def _enrich(
        self,
        rows: list[Statement],
        caller_id: Optional[UUID],
        now: datetime,
    ) -> list[StatementDetail]:
        """Attach politician, author and permission data to each row."""
        if not rows:
            return []

        politicians = self._store.get_politicians({row.politician_id for row in rows})
        authors = self._store.get_profiles({row.author_id for row in rows})

        details = []
        for row in rows:
            politician = politicians.get(row.politician_id)
            author = authors.get(row.author_id)
            if politician is None or author is None:
                logger.error(
                    "Statement references missing display data",
                    statement_id=str(row.id),
                    politician_found=politician is not None,
                    author_found=author is not None,
                )
                raise InternalError("Statement references a missing politician or author")

            permissions = permissions_for(
                caller_id=caller_id,
                author_id=row.author_id,
                recorded_at=row.recorded_at,
                now=now,
                grace_period=self._config.grace_period,
                is_deleted=row.is_deleted,
            )
            details.append(StatementDetail(
                **row.model_dump(exclude={"deleted_at"}),
                politician=politician,
                created_by=author,
                can_edit=permissions.can_edit,
                can_delete=permissions.can_delete,
            ))
        return details

    # ============================================================
    # READS
    # ============================================================

    def _paginate(
        self,
        query: StatementQuery,
        page: int,
        limit: int,
        caller_id: Optional[UUID],
        now: datetime,
    ) -> PaginatedStatements:
        with self._store_errors("list statements"):
            total = self._store.count_statements(query)
            rows = self._store.list_statements(query, offset=(page - 1) * limit, limit=limit)
            data = self._enrich(rows, caller_id, now)

        return PaginatedStatements(
            data=data,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
            ),
        )

    def list_statements(
        self,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        politician_id: Optional[UUID] = None,
        sort_by: Any = SortField.RECORDED_AT,
        order: Any = SortOrder.DESC,
        caller_id: Optional[UUID] = None,
    ) -> PaginatedStatements:
        """
        The global feed, newest first by default.

        Raises:
            ValidationError: page/limit out of range, unknown sort_by or order
        """
        page, limit = self._validate_paging(page, limit)
        query = StatementQuery(
            politician_id=politician_id,
            sort_by=_coerce_enum(SortField, sort_by, "sort_by"),
            order=_coerce_enum(SortOrder, order, "order"),
        )
        return self._paginate(query, page, limit, caller_id, self._now())

    def list_politician_statements(
        self,
        politician_id: UUID,
        *,
        time_range: Any = TimeRange.ALL,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: Any = SortField.RECORDED_AT,
        order: Any = SortOrder.DESC,
        caller_id: Optional[UUID] = None,
    ) -> PaginatedStatements:
        """
        One politician's timeline, optionally limited to a recent window.

        The window is measured back from the current time on every call.

        Raises:
            ValidationError: bad paging, sort, order or time_range
            NotFound: the politician does not exist
        """
        page, limit = self._validate_paging(page, limit)
        time_range = _coerce_enum(TimeRange, time_range, "time_range")
        sort_field = _coerce_enum(SortField, sort_by, "sort_by")
        sort_order = _coerce_enum(SortOrder, order, "order")
        now = self._now()

        with self._store_errors("load politician"):
            if not self._store.politician_exists(politician_id):
                raise NotFound("politician", politician_id)

        recorded_since = None
        if time_range.days is not None:
            recorded_since = now - timedelta(days=time_range.days)

        query = StatementQuery(
            politician_id=politician_id,
            recorded_since=recorded_since,
            sort_by=sort_field,
            order=sort_order,
        )
        return self._paginate(query, page, limit, caller_id, now)

    def get_statement(
        self,
        statement_id: UUID,
        caller_id: Optional[UUID] = None,
    ) -> StatementDetail:
        """
        Fetch one live statement.

        A deleted statement is reported as NotFound, exactly like one that
        never existed.
        """
        with self._store_errors("load statement"):
            row = self._store.get_statement(statement_id)
            if row is None or row.is_deleted:
                raise NotFound("statement", statement_id)
            return self._enrich([row], caller_id, self._now())[0]

    # ============================================================
    # AUGMENTATION
    # ============================================================

    def _client(self) -> OpenRouterClient:
        if self._augmentation_client is None:
            self._augmentation_client = OpenRouterClient.from_config(self._config.augmentation)
            self._owns_client = True
        return self._augmentation_client

    def _generate_summary(self, text: str) -> Optional[str]:
        """Ask the augmentation client for a summary. None on any failure."""
        settings = self._config.augmentation
        start = time.perf_counter()
        try:
            result = self._client().chat_completion(
                model=settings.model,
                user_message=SUMMARY_USER_TEMPLATE.format(text=text),
                system_message=SUMMARY_SYSTEM_PROMPT,
                response_format=SUMMARY_RESPONSE_FORMAT,
                parameters={
                    "temperature": settings.temperature,
                    "max_tokens": settings.max_tokens,
                },
            )
        except OpenRouterError as e:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.record_augmentation("failure", latency_ms)
            logger.warning(
                "AI summary generation failed, keeping original text",
                error_type=type(e).__name__,
                error=e.message,
                status_code=e.status_code,
            )
            return None
        except Exception as e:
            # A client defect must not fail the creation either
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.record_augmentation("failure", latency_ms)
            logger.warning(
                "AI summary client raised unexpectedly, keeping original text",
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        latency_ms = (time.perf_counter() - start) * 1000
        content = result.content
        summary = content.get("summary") if isinstance(content, dict) else None
        if not isinstance(summary, str) or not summary.strip():
            self._metrics.record_augmentation("failure", latency_ms)
            logger.warning(
                "AI summary response had no usable summary, keeping original text",
                model=result.model,
            )
            return None

        self._metrics.record_augmentation("success", latency_ms)
        return summary.strip()

    def _augment(self, text: str) -> str:
        """Return the text to store: the body, plus a summary when one is available."""
        if not self._config.augmentation.enabled:
            self._metrics.record_augmentation("skipped")
            return text

        summary = self._generate_summary(text)
        if summary is None:
            return text

        combined = f"{text}{SUMMARY_DELIMITER}{summary}"
        if len(combined) > self._config.max_text_length:
            logger.warning(
                "AI summary would exceed the maximum statement length, discarding it",
                length=len(combined),
                maximum=self._config.max_text_length,
            )
            return text
        return combined

    # ============================================================
    # MUTATIONS
    # ============================================================

    def ensure_author(self, author_id: UUID, display_name: str) -> AuthorSummary:
        """
        Make sure a verified caller has a profile row.

        Existing profiles are left untouched. The display name is trimmed
        to fit the profile column; a blank name becomes "Anonymous contributor".
        """
        with self._store_errors("load profile"):
            existing = self._store.get_profiles([author_id]).get(author_id)
            if existing is not None:
                return existing
            profile = AuthorSummary(
                id=author_id,
                display_name=normalize_display_name(display_name),
            )
            self._store.save_profile(profile)
        logger.info("Author profile created", author_id=str(author_id))
        return profile

    def create_statement(
        self,
        command: CreateStatementCommand,
        caller_id: Optional[UUID],
        display_name: Optional[str] = None,
    ) -> StatementDetail:
        """
        Record a new statement for the calling contributor.

        Validation order: identity, politician, statement_text, occurred_at.
        When display_name is given, the caller's profile is created after
        validation passes, just before the insert.

        Raises:
            AuthenticationRequired: no caller
            NotFound: the politician does not exist
            ValidationError: bad statement_text or occurred_at
            InternalError: store failure
        """
        if caller_id is None:
            raise AuthenticationRequired()

        with self._store_errors("load politician"):
            if not self._store.politician_exists(command.politician_id):
                raise NotFound("politician", command.politician_id)

        text = self._validate_text(command.statement_text)
        occurred_at = self._validate_occurred_at(command.occurred_at, self._now())

        stored_text = self._augment(text)

        now = self._now()
        statement = Statement(
            id=uuid4(),
            politician_id=command.politician_id,
            author_id=caller_id,
            statement_text=stored_text,
            occurred_at=occurred_at,
            recorded_at=now,
            updated_at=now,
        )

        if display_name is not None:
            self.ensure_author(caller_id, display_name)

        with self._store_errors("create statement"):
            saved = self._store.insert_statement(statement)
            detail = self._enrich([saved], caller_id, now)[0]

        self._metrics.record_mutation("create")
        logger.info(
            "Statement created",
            statement_id=str(saved.id),
            politician_id=str(saved.politician_id),
            author_id=str(caller_id),
            summarized=stored_text != text,
        )
        return detail

    def update_statement(
        self,
        statement_id: UUID,
        command: UpdateStatementCommand,
        caller_id: Optional[UUID],
    ) -> StatementDetail:
        """
        Change the supplied fields of a statement the caller owns.

        An update with no supplied fields returns the current state.

        Raises:
            AuthenticationRequired: no caller
            NotFound: the statement does not exist
            Forbidden: deleted, not owner, or grace period expired
            ValidationError: a supplied field is invalid
        """
        if caller_id is None:
            raise AuthenticationRequired()

        now = self._now()
        with self._store_errors("load statement"):
            existing = self._store.get_statement(statement_id)
        if existing is None:
            raise NotFound("statement", statement_id)

        self._check_mutable(existing, caller_id, now, deleted_reason="deleted")

        supplied = command.supplied_fields()
        changes: dict[str, Any] = {}
        if "statement_text" in supplied:
            changes["statement_text"] = self._validate_text(command.statement_text)
        if "occurred_at" in supplied:
            changes["occurred_at"] = self._validate_occurred_at(command.occurred_at, now)

        if not changes:
            with self._store_errors("load statement"):
                return self._enrich([existing], caller_id, now)[0]

        changes["updated_at"] = now
        with self._store_errors("update statement"):
            updated = self._store.update_statement(statement_id, changes)
            if updated is None:
                raise NotFound("statement", statement_id)
            detail = self._enrich([updated], caller_id, now)[0]

        self._metrics.record_mutation("update")
        logger.info(
            "Statement updated",
            statement_id=str(statement_id),
            author_id=str(caller_id),
            fields=sorted(set(changes) - {"updated_at"}),
        )
        return detail

    def delete_statement(
        self,
        statement_id: UUID,
        caller_id: Optional[UUID],
    ) -> DeletedStatement:
        """
        Soft delete a statement the caller owns.

        Not idempotent: a second delete raises Forbidden("already deleted").
        """
        if caller_id is None:
            raise AuthenticationRequired()

        now = self._now()
        with self._store_errors("load statement"):
            existing = self._store.get_statement(statement_id)
        if existing is None:
            raise NotFound("statement", statement_id)

        self._check_mutable(existing, caller_id, now, deleted_reason="already deleted")

        with self._store_errors("delete statement"):
            deleted = self._store.update_statement(
                statement_id,
                {"deleted_at": now, "updated_at": now},
            )
        if deleted is None or deleted.deleted_at is None:
            raise NotFound("statement", statement_id)

        self._metrics.record_mutation("delete")
        logger.info(
            "Statement deleted",
            statement_id=str(statement_id),
            author_id=str(caller_id),
        )
        return DeletedStatement(id=deleted.id, deleted_at=deleted.deleted_at)
