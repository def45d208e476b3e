"""
Permission Computation

Permissions are derived, never persisted. They are computed for each
(statement, caller) pair every time a statement is read.

Rules:
- An owner may edit or delete while the statement is inside the grace window
- Nobody else may edit or delete, ever
- can_edit and can_delete are always equal
- An anonymous caller always gets {False, False}

Nothing in this module touches storage or the clock; callers pass in
the current time.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class PermissionView:
    """What the caller may do with one statement."""
    can_edit: bool
    can_delete: bool


DENIED = PermissionView(can_edit=False, can_delete=False)


def within_grace_window(recorded_at: datetime, now: datetime, grace_period: timedelta) -> bool:
    """
    True while now - recorded_at < grace_period.

    At exactly age == grace_period the window is closed.
    """
    return now - recorded_at < grace_period


def compute_permissions(is_owner: bool, in_grace_window: bool) -> PermissionView:
    """Both flags are True iff the caller owns the statement and the window is open."""
    allowed = bool(is_owner and in_grace_window)
    return PermissionView(can_edit=allowed, can_delete=allowed)


def permissions_for(
    caller_id: Optional[UUID],
    author_id: UUID,
    recorded_at: datetime,
    now: datetime,
    grace_period: timedelta,
    is_deleted: bool = False,
) -> PermissionView:
    """
    Resolve permissions for a caller against one statement.

    Args:
        caller_id: Verified caller, or None for anonymous
        author_id: Statement author
        recorded_at: When the statement was accepted
        now: Current server time
        grace_period: Length of the owner edit window
        is_deleted: Tombstoned statements are never mutable
    """
    if caller_id is None or is_deleted:
        return DENIED
    return compute_permissions(
        is_owner=caller_id == author_id,
        in_grace_window=within_grace_window(recorded_at, now, grace_period),
    )
