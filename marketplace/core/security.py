"""
JWT helpers for reading caller identity from bearer tokens.

Tokens are issued by the authentication service; this backend only needs to
verify them and read the subject and role claims. ``create_access_token`` is
kept for tooling and tests that need a correctly signed token.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger

settings = get_settings()
logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class TokenError(Exception):
    """Raised when a bearer token cannot be trusted."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


def create_access_token(
    subject: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token carrying subject and role claims.

    Args:
        subject: User identifier placed in the ``sub`` claim
        role: User role placed in the ``role`` claim
        expires_delta: Token lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT string
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string to decode

    Returns:
        Dictionary of decoded token claims

    Raises:
        TokenError: If token is empty, expired, or invalid
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token has expired", error=str(e))
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Invalid token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError(
            "Invalid token",
            code="TOKEN_INVALID",
            original_error=str(e),
        ) from e

    logger.debug(
        "Token decoded successfully",
        subject=payload.get("sub"),
        role=payload.get("role"),
    )
    return payload
