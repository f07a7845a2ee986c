"""JWT verification for viewer-facing endpoints.

Tokens are issued by the site's auth service; this service only verifies
them. ``create_access_token`` exists for tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from streamcore.config import get_settings
from streamcore.logging_config import get_logger

logger = get_logger(__name__)


class TokenError(Exception):
    """Token validation error with specific code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def create_access_token(
    user_id: str,
    additional_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token.

    Args:
        user_id: User ID to encode in token
        additional_claims: Additional claims to include
        expires_delta: Custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + expires_delta,
    }
    if additional_claims:
        payload.update(additional_claims)

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> dict[str, Any] | None:
    """Verify an access token and return its payload.

    Returns:
        Token payload if valid, None otherwise

    Raises:
        TokenError: If the token has expired
    """
    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require_exp": True, "require_sub": True, "require_iat": True},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("access_token_expired")
        raise TokenError("TOKEN_EXPIRED", "Token has expired")
    except JWTError as e:
        logger.warning("access_token_invalid", error_type=type(e).__name__)
        return None

    if payload.get("type") != "access":
        logger.debug("access_token_wrong_type", token_type=payload.get("type"))
        return None

    return payload
