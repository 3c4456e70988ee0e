"""Roles of the onboarding platform.

- PM: program manager, provisions instructors and administers tasks
- INSTRUCTOR: works through their own onboarding plan
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles carried in the access token ``role`` claim."""

    PM = "pm"
    INSTRUCTOR = "instructor"


def parse_role(role: UserRole | str | None) -> UserRole | None:
    """Parse a role claim, case-insensitively.

    Returns:
        The matching UserRole, or None for unknown or missing roles.

    Examples:
        >>> parse_role("PM")
        <UserRole.PM: 'pm'>
        >>> parse_role("admin") is None
        True
    """
    if role is None:
        return None
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role.strip().lower())
    except ValueError:
        return None
