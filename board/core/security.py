"""
Access tokens.

Tokens are HS256 JWTs. The claims the API relies on are the user ID
("sub", as a string per RFC 7519) and the issue time ("iat"); "exp" bounds
their lifetime and "type" keeps other token kinds from being accepted here.
"""

from datetime import UTC, datetime, timedelta

import jwt

from board.config import settings

TOKEN_TYPE = "access"


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    """
    Issue an access token for a user.

    Args:
        user_id: Subject of the token
        expires_delta: Lifetime, ACCESS_TOKEN_EXPIRE_MINUTES if not given
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": TOKEN_TYPE,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_access_token(token: str) -> int | None:
    """
    Return the user ID carried by a valid access token, or None.

    Expired, tampered, malformed and non-access tokens are all None; callers
    only need to know whether the bearer is authenticated.
    """
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.InvalidTokenError:
        # Includes ExpiredSignatureError and MissingRequiredClaimError
        return None

    if claims.get("type") != TOKEN_TYPE:
        return None

    try:
        return int(claims["sub"])
    except (ValueError, TypeError):
        return None
