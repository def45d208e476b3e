# Canonical schemas for the statement archive.

from .politician import AuthorSummary, PartySummary, PoliticianSummary
from .statement import (
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

__all__ = [
    # Lookups
    "AuthorSummary",
    "PartySummary",
    "PoliticianSummary",
    # Statement
    "Statement",
    "StatementDetail",
    "DeletedStatement",
    "Pagination",
    "PaginatedStatements",
    # Commands
    "CreateStatementCommand",
    "UpdateStatementCommand",
    # Query enums
    "SortField",
    "SortOrder",
    "TimeRange",
]
