"""Access tokens for the TaskFlow API.

Tokens are HS256 JWTs issued by TaskFlow for the TaskFlow API: the `iss` and
`aud` claims are checked on every decode, so a token signed with the same
secret for another service is rejected. The subject is the user id.
"""

import logging
import os
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict
from dotenv import load_dotenv

from taskflow.models.constants import DEFAULT_TOKEN_TTL_HOURS, TOKEN_AUDIENCE, TOKEN_ISSUER

load_dotenv()

logger = logging.getLogger(__name__)

# JWT configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", str(DEFAULT_TOKEN_TTL_HOURS)))

REQUIRED_CLAIMS = ["sub", "exp", "iat", "iss", "aud"]


def create_access_token(user_id: str, now: Optional[datetime] = None) -> str:
    """Issue an access token for a user.

    Args:
        user_id: Account the token authenticates as
        now: Issue time (defaults to utcnow)

    Returns:
        Encoded JWT token string
    """
    now = now or datetime.utcnow()
    payload = {
        "sub": user_id,
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Validate a token and return its claims, or None if it is not a TaskFlow access token."""
    try:
        return jwt.decode(
            token,
            JWT_SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected access token: {type(e).__name__}")
        return None


def get_user_id_from_token(token: str) -> Optional[str]:
    """User id carried by a valid token."""
    payload = decode_access_token(token)
    if payload:
        return payload.get("sub") or None
    return None
