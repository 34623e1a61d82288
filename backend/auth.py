"""Bearer-token identity for the timer API.

Tokens are issued by an external identity provider; this service only
verifies them and takes the ``sub`` claim as the opaque user id. For RS256
providers set ``AUTH_ALGORITHM=RS256`` and put the PEM public key in
``AUTH_SECRET``.
"""
import logging
import os
import time

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from errors import Unauthorized

logger = logging.getLogger(__name__)

AUTH_SECRET = os.getenv("AUTH_SECRET", "dev_secret")
AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")
AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE") or None
AUTH_ISSUER = os.getenv("AUTH_ISSUER") or None

security = HTTPBearer(auto_error=False)


def decode_user_id(token: str) -> str:
    """Verify the token and return its subject, or raise Unauthorized."""
    try:
        payload = jwt.decode(
            token,
            AUTH_SECRET,
            algorithms=[AUTH_ALGORITHM],
            audience=AUTH_AUDIENCE,
            issuer=AUTH_ISSUER,
            options={"verify_aud": AUTH_AUDIENCE is not None},
        )
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {str(e)}")
        raise Unauthorized() from e

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise Unauthorized()
    return user_id


def get_current_user_id(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    if creds is None or not creds.credentials:
        raise Unauthorized()
    return decode_user_id(creds.credentials)


def issue_token(user_id: str, expires_in: int = 3600) -> str:
    """Sign a token the way the identity provider would (local development)."""
    now = int(time.time())
    claims = {"sub": user_id, "iat": now, "exp": now + expires_in}
    if AUTH_AUDIENCE:
        claims["aud"] = AUTH_AUDIENCE
    if AUTH_ISSUER:
        claims["iss"] = AUTH_ISSUER
    return jwt.encode(claims, AUTH_SECRET, algorithm=AUTH_ALGORITHM)
