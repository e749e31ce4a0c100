"""
JWT Token Handling

Create and verify bearer tokens for authentication.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from medimind.api.config import settings


def create_access_token(
    user_id: str,
    email: str,
    role: str = "patient",
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create a new access token.

    Args:
        user_id: User's id
        email: User's email
        role: User's role at issue time (informational; the stored role wins)
        expires_minutes: Override for the configured expiry

    Returns:
        Encoded JWT access token
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )

    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        token_type: Expected token type

    Returns:
        Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )

        # Verify token type
        if payload.get("type") != token_type:
            return None

        return payload

    except ExpiredSignatureError:
        return None
    except InvalidTokenError:
        return None
