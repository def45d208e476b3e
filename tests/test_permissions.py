"""
Tests for permission computation.

These never touch a store: permissions are a pure function of ownership
and the grace window.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from speechkarma.core.permissions import (
    DENIED,
    PermissionView,
    compute_permissions,
    permissions_for,
    within_grace_window,
)


GRACE = timedelta(minutes=15)
RECORDED = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestComputePermissions:

    @pytest.mark.parametrize("is_owner,in_window,expected", [
        (True, True, True),
        (True, False, False),
        (False, True, False),
        (False, False, False),
    ])
    def test_truth_table(self, is_owner, in_window, expected):
        """Both flags are true only for an owner inside the window."""
        view = compute_permissions(is_owner, in_window)
        assert view == PermissionView(can_edit=expected, can_delete=expected)

    def test_flags_always_equal(self):
        for is_owner in (True, False):
            for in_window in (True, False):
                view = compute_permissions(is_owner, in_window)
                assert view.can_edit == view.can_delete


class TestGraceWindow:

    def test_open_just_before_expiry(self):
        now = RECORDED + timedelta(minutes=14, seconds=59)
        assert within_grace_window(RECORDED, now, GRACE)

    def test_closed_exactly_at_expiry(self):
        """age == grace_period is already outside the window."""
        assert not within_grace_window(RECORDED, RECORDED + GRACE, GRACE)

    def test_closed_after_expiry(self):
        now = RECORDED + timedelta(minutes=15, seconds=1)
        assert not within_grace_window(RECORDED, now, GRACE)

    def test_open_at_recording_time(self):
        assert within_grace_window(RECORDED, RECORDED, GRACE)


class TestPermissionsFor:

    def test_anonymous_caller_denied(self):
        """No identity means no flags, even on a brand new statement."""
        view = permissions_for(None, uuid4(), RECORDED, RECORDED, GRACE)
        assert view == DENIED

    def test_owner_inside_window(self):
        owner = uuid4()
        view = permissions_for(owner, owner, RECORDED, RECORDED + timedelta(minutes=5), GRACE)
        assert view.can_edit and view.can_delete

    def test_owner_after_window(self):
        owner = uuid4()
        view = permissions_for(owner, owner, RECORDED, RECORDED + GRACE, GRACE)
        assert view == DENIED

    def test_non_owner_inside_window(self):
        view = permissions_for(uuid4(), uuid4(), RECORDED, RECORDED, GRACE)
        assert view == DENIED

    def test_deleted_statement_denied_for_owner(self):
        owner = uuid4()
        view = permissions_for(owner, owner, RECORDED, RECORDED, GRACE, is_deleted=True)
        assert view == DENIED
