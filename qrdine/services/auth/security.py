"""
Credential Primitives

Password hashing (bcrypt via passlib) and access-token signing (PyJWT).
Hash computation is CPU-bound, so the async helpers run it in a worker
thread and only the calling request is suspended.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from qrdine.core.config import get_settings
from qrdine.core.errors import AuthenticationError

logger = logging.getLogger(__name__)


@lru_cache()
def get_password_context() -> CryptContext:
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.password_hash_rounds,
    )


def hash_password(password: str) -> str:
    return get_password_context().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return get_password_context().verify(password, password_hash)
    except ValueError:
        # Malformed stored hash
        logger.warning("Stored password hash could not be parsed")
        return False


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


def create_access_token(
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign an access token for a user.

    Args:
        user_id: Subject of the token
        role: Role at issuance (informational; the gate re-reads the user)
        expires_delta: Lifetime override

    Returns:
        Encoded JWT string
    """
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token.

    Raises:
        AuthenticationError: If the token is expired, tampered or malformed
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired, please log in again")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Not authorized to access this route")

    try:
        payload["sub"] = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Not authorized to access this route")
    return payload
