"""Access token validation.

Tokens are issued by the identity service; this service only verifies
them and turns their claims into a ``Principal``.
"""

from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from onboarding_api.auth.permissions import parse_role
from onboarding_api.auth.schemas import Principal
from onboarding_api.config.settings import Settings, get_settings


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = settings or get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    return payload


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build the request principal from decoded token claims.

    Raises:
        JWTError: If the subject is not a UUID or the role is unknown.
    """
    role = parse_role(payload.get("role"))
    if role is None:
        msg = "Token carries no known role"
        raise JWTError(msg)

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        msg = "Token subject is not a valid user id"
        raise JWTError(msg) from e

    return Principal(user_id=user_id, role=role, email=payload.get("email"))
