"""
Bearer-token helpers.

Tokens are issued by the OTP login flow, which lives outside this service;
here they are only minted for operators and tests and verified on every
request.  The ``sub`` claim carries the user id, ``role`` is informative
only: authorization always reads the role from the database row.
"""
from datetime import datetime, timedelta, timezone

import jwt

from vbs.config import settings
from vbs.exceptions import UnauthorizedError
from vbs.models import User

ACCESS_TOKEN_TTL = timedelta(hours=12)


def create_access_token(user: User, ttl: timedelta = ACCESS_TOKEN_TTL) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by *token*, or raise UnauthorizedError."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return int(payload["sub"])
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedError("Token expired") from exc
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise UnauthorizedError("Invalid token") from exc
