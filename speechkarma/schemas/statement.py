"""
Canonical Statement Schemas

A Statement is something a politician said, recorded by a contributor.

Two timestamps are kept apart on purpose:
- occurred_at: when the politician said it (caller-supplied, never future)
- recorded_at: when the archive accepted it (server-assigned, immutable)

Statements are never physically removed. Deletion sets deleted_at and
the row drops out of every read path.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .politician import AuthorSummary, PoliticianSummary


class SortField(str, Enum):
    """Columns a statement listing may be ordered by."""
    RECORDED_AT = "recorded_at"
    OCCURRED_AT = "occurred_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TimeRange(str, Enum):
    """
    Relative window over recorded_at for politician timelines.

    The cutoff is computed from server time on every call. It is never stored.
    """
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_365_DAYS = "365d"
    ALL = "all"

    @property
    def days(self) -> Optional[int]:
        return {
            TimeRange.LAST_7_DAYS: 7,
            TimeRange.LAST_30_DAYS: 30,
            TimeRange.LAST_365_DAYS: 365,
        }.get(self)


class Statement(BaseModel):
    """
    A persisted statement row.

    author_id is set from the verified caller on creation and never changes.
    """
    id: UUID = Field(
        ...,
        description="Unique identifier for this statement"
    )
    politician_id: UUID = Field(
        ...,
        description="The politician who made the statement"
    )
    author_id: UUID = Field(
        ...,
        description="The contributor who recorded the statement"
    )
    statement_text: str = Field(
        ...,
        description="Statement body, possibly followed by an AI summary"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the statement was made (not when entered)"
    )
    recorded_at: datetime = Field(
        ...,
        description="When the archive accepted the statement"
    )
    updated_at: datetime
    deleted_at: Optional[datetime] = Field(
        default=None,
        description="Tombstone. Non-null rows are invisible to every read path"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class StatementDetail(BaseModel):
    """
    A statement enriched with display data and the caller's permissions.

    This is the only shape the engine hands out for a statement.
    """
    id: UUID
    politician_id: UUID
    author_id: UUID
    statement_text: str
    occurred_at: datetime
    recorded_at: datetime
    updated_at: datetime
    politician: PoliticianSummary
    created_by: AuthorSummary
    can_edit: bool = False
    can_delete: bool = False


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PaginatedStatements(BaseModel):
    """One page of a statement listing."""
    data: list[StatementDetail]
    pagination: Pagination


class DeletedStatement(BaseModel):
    """Receipt returned by a successful soft delete."""
    id: UUID
    deleted_at: datetime


class CreateStatementCommand(BaseModel):
    """
    Input for recording a new statement.

    Unknown fields are dropped on parse. In particular a client cannot name
    an author: attribution always comes from the verified identity.
    Values are checked by the engine, not here, so that every violation is
    reported as a field-level ValidationError in a fixed order.
    """
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "politician_id": "660e8400-e29b-41d4-a716-446655440001",
                "statement_text": "We will build 500,000 new homes by the end of this term.",
                "occurred_at": "2026-03-15T14:30:00Z",
            }
        },
    )

    politician_id: UUID
    statement_text: str
    occurred_at: Union[datetime, str]


class UpdateStatementCommand(BaseModel):
    """
    Partial update. Only fields present in the payload change.

    An explicit null counts as supplied and fails validation.
    """
    model_config = ConfigDict(extra="ignore")

    statement_text: Optional[str] = None
    occurred_at: Optional[Union[datetime, str]] = None

    def supplied_fields(self) -> set[str]:
        return set(self.model_fields_set)
