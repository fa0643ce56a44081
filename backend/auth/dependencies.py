"""
FastAPI dependencies for authentication.

``get_current_user`` is the session check every workspace endpoint runs
before any core logic: a missing, invalid or expired bearer token, or a
token for an unknown or inactive user, is rejected with 401.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from models import User
from auth.security import ACCESS_TOKEN_TYPE, verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from the JWT bearer token.

    Raises:
        HTTPException: 401 if authentication fails

    Example:
        @router.get("/api/workspaces")
        def list_workspaces(user: User = Depends(get_current_user)):
            ...
    """
    if not credentials or not credentials.credentials:
        logger.info("No authentication credentials provided")
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    token_type = payload.get("type")
    if token_type != ACCESS_TOKEN_TYPE:
        logger.info(f"Invalid token type: {token_type}")
        raise _unauthorized("Invalid token type. Use access token for API requests.")

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        logger.info("Token payload missing 'sub' claim")
        raise _unauthorized("Invalid token payload")

    user = db.get(User, user_id)
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise _unauthorized("User not found")

    if not user.is_active:
        logger.info(f"Inactive user attempted access: {user_id}")
        raise _unauthorized("User account is inactive")

    logger.debug(f"User authenticated via JWT: {user.email}")
    return user
