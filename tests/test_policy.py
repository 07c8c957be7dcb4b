"""Tests for role-based access limits."""

from __future__ import annotations

import pytest

from support_chat.core import policy
from support_chat.core.types import UserRole


class TestMessageLimit:
    @pytest.mark.parametrize(
        "role,expected",
        [("guest", 10), ("user", 50), ("premium", 500), ("admin", policy.UNLIMITED)],
    )
    def test_limits(self, role, expected):
        assert policy.message_limit(role) == expected

    def test_within_limit_boundary(self):
        assert policy.within_message_limit(UserRole.GUEST, 9)
        assert not policy.within_message_limit(UserRole.GUEST, 10)

    def test_admin_never_limited(self):
        assert policy.within_message_limit(UserRole.ADMIN, 1_000_000)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            policy.message_limit("superuser")


class TestTimeouts:
    @pytest.mark.parametrize(
        "role,minutes",
        [(UserRole.GUEST, 15), (UserRole.USER, 30), (UserRole.PREMIUM, 60), (UserRole.ADMIN, 60)],
    )
    def test_timeout_minutes(self, role, minutes):
        assert policy.timeout_minutes(role) == minutes


class TestFeatureFlags:
    def test_export_denied_for_guest_only(self):
        assert not policy.can_export(UserRole.GUEST)
        assert all(policy.can_export(r) for r in (UserRole.USER, UserRole.PREMIUM, UserRole.ADMIN))

    def test_advanced_features(self):
        assert [r for r in UserRole if policy.can_access_advanced(r)] == [
            UserRole.PREMIUM,
            UserRole.ADMIN,
        ]

    def test_priority_support_matches_advanced(self):
        for role in UserRole:
            assert policy.has_priority_support(role) == policy.can_access_advanced(role)

    def test_threading_open_to_everyone(self):
        assert all(policy.can_use_threading(r) for r in UserRole)


class TestRoleTableResolver:
    def test_lookup_is_case_and_space_insensitive(self):
        resolve = policy.role_table_resolver({"Ops@Example.com": "admin"})
        assert resolve(" ops@example.COM ") == UserRole.ADMIN

    def test_unknown_address_is_guest(self):
        assert policy.role_table_resolver({})("dana@example.com") == UserRole.GUEST

    def test_invalid_role_rejected(self):
        with pytest.raises(ValueError):
            policy.role_table_resolver({"ops@example.com": "owner"})
