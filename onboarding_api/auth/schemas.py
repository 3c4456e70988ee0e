"""Authenticated caller passed explicitly into service operations."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from onboarding_api.auth.permissions import UserRole


class Principal(BaseModel):
    """The caller of a request, decoded from the bearer token."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID = Field(..., description="User UUID (token subject)")
    role: UserRole
    email: str | None = None

    @property
    def is_pm(self) -> bool:
        return self.role == UserRole.PM

    @property
    def is_instructor(self) -> bool:
        return self.role == UserRole.INSTRUCTOR
