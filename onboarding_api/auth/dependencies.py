"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Principal extraction from the bearer token
- Role-based access control
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from onboarding_api.auth.permissions import UserRole
from onboarding_api.auth.schemas import Principal
from onboarding_api.auth.security import decode_access_token, principal_from_claims
from onboarding_api.core.context import set_user_id, set_user_role


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_principal(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Principal:
    """Get the authenticated caller from the access token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        principal = principal_from_claims(decode_access_token(token))
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    # Identity for log events
    set_user_id(principal.user_id)
    set_user_role(principal.role.value)

    return principal


def require_role(*allowed_roles: UserRole):
    """Create dependency requiring specific role(s).

    Example:
        @router.post("/instructors")
        async def create(
            principal: Annotated[Principal, Depends(require_role(UserRole.PM))]
        ):
            ...
    """

    async def role_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission",
            )
        return principal

    return role_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
PmPrincipal = Annotated[Principal, Depends(require_role(UserRole.PM))]
InstructorPrincipal = Annotated[Principal, Depends(require_role(UserRole.INSTRUCTOR))]
