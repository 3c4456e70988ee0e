from onboarding_api.auth.permissions import UserRole
from onboarding_api.auth.schemas import Principal


__all__ = ["Principal", "UserRole"]
