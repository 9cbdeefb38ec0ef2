"""Credential hashing (bcrypt) and session tokens (JWT, HS256).

The workflow code never sees plaintext beyond handing it to these helpers.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from pharmabridge.core.config import settings

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # malformed hash in the row
        logger.warning("Stored password hash could not be parsed")
        return False


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows. Used for federated sign-ups."""
    return get_password_hash(secrets.token_urlsafe(32))


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign claims into a JWT. `sub` must be present."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = dict(claims)
    payload.update({"iat": now, "exp": expire})
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the verified claims, or None for an invalid or expired token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected access token: {type(e).__name__}")
        return None
