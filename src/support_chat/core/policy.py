"""Role-based feature limits for chat conversations."""

from __future__ import annotations

from typing import Callable, Mapping

from support_chat.core.types import UserRole

UNLIMITED = -1

_MESSAGE_LIMITS: dict[UserRole, int] = {
    UserRole.GUEST: 10,
    UserRole.USER: 50,
    UserRole.PREMIUM: 500,
    UserRole.ADMIN: UNLIMITED,
}

_TIMEOUT_MINUTES: dict[UserRole, int] = {
    UserRole.GUEST: 15,
    UserRole.USER: 30,
    UserRole.PREMIUM: 60,
    UserRole.ADMIN: 60,
}


def message_limit(role: UserRole | str) -> int:
    """Maximum user messages per conversation, or UNLIMITED."""
    return _MESSAGE_LIMITS[UserRole(role)]


def timeout_minutes(role: UserRole | str) -> int:
    """Idle minutes before a conversation expires."""
    return _TIMEOUT_MINUTES[UserRole(role)]


def can_export(role: UserRole | str) -> bool:
    return UserRole(role) != UserRole.GUEST


def can_access_advanced(role: UserRole | str) -> bool:
    return UserRole(role) in (UserRole.PREMIUM, UserRole.ADMIN)


def has_priority_support(role: UserRole | str) -> bool:
    return UserRole(role) in (UserRole.PREMIUM, UserRole.ADMIN)


def can_use_threading(role: UserRole | str) -> bool:
    return True


def within_message_limit(role: UserRole | str, user_message_count: int) -> bool:
    """True if one more user message fits the role's quota."""
    limit = message_limit(role)
    return limit == UNLIMITED or user_message_count < limit


RoleResolver = Callable[[str], UserRole]


def role_table_resolver(roles: Mapping[str, UserRole | str]) -> RoleResolver:
    """Resolve a visitor's role from a static e-mail table; unknown addresses are guests."""
    table = {email.strip().lower(): UserRole(role) for email, role in roles.items()}

    def resolve(email: str) -> UserRole:
        return table.get(email.strip().lower(), UserRole.GUEST)

    return resolve
