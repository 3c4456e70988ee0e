"""Tests for auth permissions."""

import pytest

from onboarding_api.auth.permissions import UserRole, parse_role


class TestUserRole:
    """Tests for UserRole enum."""

    def test_role_values(self) -> None:
        """Roles should have correct string values."""
        assert UserRole.PM.value == "pm"
        assert UserRole.INSTRUCTOR.value == "instructor"


class TestParseRole:
    """Tests for parse_role function."""

    @pytest.mark.parametrize(
        "role,expected",
        [
            ("pm", UserRole.PM),
            ("PM", UserRole.PM),
            (" instructor ", UserRole.INSTRUCTOR),
            (UserRole.INSTRUCTOR, UserRole.INSTRUCTOR),
        ],
    )
    def test_known_roles(self, role: str | UserRole, expected: UserRole) -> None:
        assert parse_role(role) == expected

    @pytest.mark.parametrize("role", ["admin", "", None])
    def test_unknown_roles(self, role: str | None) -> None:
        assert parse_role(role) is None
