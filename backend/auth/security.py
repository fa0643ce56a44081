"""
Password hashing and bearer token handling.

Passwords are hashed with Argon2id. Sessions are stateless JWT access
tokens whose ``sub`` claim holds the user id; secrets and lifetimes come
from config.py.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY
from time_utils import utc_now

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"

# Argon2id: memory-hard and GPU-resistant
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    is_valid = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password verification result: {is_valid}")
    return is_valid


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issue a session token for ``user_id``.

    Example:
        >>> token = create_access_token(user.id)
        >>> verify_token(token)["sub"] == user.id
        True
    """
    expires_at = utc_now() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": user_id, "exp": expires_at, "type": ACCESS_TOKEN_TYPE}
    logger.debug(f"Issuing access token for user {user_id}, expires at {expires_at.isoformat()}")
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a token, checking signature and expiry.

    Returns:
        The claims, or None for a forged, malformed or expired token
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None
