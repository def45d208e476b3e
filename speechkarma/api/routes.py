"""
Statement API Routes

A thin adapter over StatementService. Routes parse the request, resolve
the caller, call exactly one engine operation and return its result.
No business rule is decided here.

Engine errors propagate to the exception handlers registered in
speechkarma.main, which turn them into the error envelope:

    {"error": {"message": "...", "code": "...", "details": {...}}}

Routes are plain `def` functions: the engine and its store are
synchronous and run in FastAPI's threadpool.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response

from speechkarma.core import StatementService
from speechkarma.schemas import (
    CreateStatementCommand,
    DeletedStatement,
    PaginatedStatements,
    StatementDetail,
    UpdateStatementCommand,
)
from speechkarma.web.auth import get_session_user


router = APIRouter(prefix="/api", tags=["Statements"])


# Listings carry per-caller permission flags, so they must not be shared
CACHE_CONTROL_PRIVATE = "private, no-cache"


def get_service(request: Request) -> StatementService:
    """Get the StatementService from app state."""
    return request.app.state.statement_service


def get_caller(request: Request) -> Optional[UUID]:
    user = get_session_user(request)
    return user.user_id if user else None


# ============================================================
# Reads
# ============================================================

@router.get("/statements", response_model=PaginatedStatements)
def list_statements(
    request: Request,
    response: Response,
    page: int = Query(1, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size (default 50, max 100)"),
    politician_id: Optional[UUID] = Query(None, description="Only this politician's statements"),
    sort_by: str = Query("recorded_at", description="recorded_at or occurred_at"),
    order: str = Query("desc", description="asc or desc"),
):
    """
    Global statement feed.

    Deleted statements are never listed. can_edit/can_delete are only
    true for the caller's own statements inside the grace period.
    """
    response.headers["Cache-Control"] = CACHE_CONTROL_PRIVATE
    return get_service(request).list_statements(
        page=page,
        limit=limit,
        politician_id=politician_id,
        sort_by=sort_by,
        order=order,
        caller_id=get_caller(request),
    )


@router.get("/politicians/{politician_id}/statements", response_model=PaginatedStatements)
def list_politician_statements(
    request: Request,
    response: Response,
    politician_id: UUID,
    time_range: str = Query("all", description="7d, 30d, 365d or all"),
    page: int = Query(1, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size (default 50, max 100)"),
    sort_by: str = Query("recorded_at", description="recorded_at or occurred_at"),
    order: str = Query("desc", description="asc or desc"),
):
    """
    One politician's statement timeline.

    time_range is measured back from the current server time.
    Returns 404 if the politician does not exist.
    """
    response.headers["Cache-Control"] = CACHE_CONTROL_PRIVATE
    return get_service(request).list_politician_statements(
        politician_id,
        time_range=time_range,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
        caller_id=get_caller(request),
    )


@router.get("/statements/{statement_id}", response_model=StatementDetail)
def get_statement(request: Request, response: Response, statement_id: UUID):
    """Single statement. Deleted statements return 404."""
    response.headers["Cache-Control"] = CACHE_CONTROL_PRIVATE
    return get_service(request).get_statement(statement_id, caller_id=get_caller(request))


# ============================================================
# Writes
# ============================================================

@router.post("/statements", response_model=StatementDetail, status_code=201)
def create_statement(request: Request, body: CreateStatementCommand):
    """
    Record a statement as the calling contributor.

    Any author field in the payload is ignored; the author is always
    the verified caller.
    """
    user = get_session_user(request)
    if user is None:
        return get_service(request).create_statement(body, caller_id=None)
    return get_service(request).create_statement(
        body, caller_id=user.user_id, display_name=user.display_name
    )


@router.patch("/statements/{statement_id}", response_model=StatementDetail)
def update_statement(
    request: Request,
    statement_id: UUID,
    body: Optional[UpdateStatementCommand] = None,
):
    """
    Partially update an own statement inside the grace period.

    Only fields present in the payload change.
    """
    command = body if body is not None else UpdateStatementCommand()
    return get_service(request).update_statement(
        statement_id, command, caller_id=get_caller(request)
    )


@router.delete("/statements/{statement_id}", response_model=DeletedStatement)
def delete_statement(request: Request, statement_id: UUID):
    """
    Soft delete an own statement inside the grace period.

    Deleting an already deleted statement returns 403, not success.
    """
    return get_service(request).delete_statement(statement_id, caller_id=get_caller(request))
