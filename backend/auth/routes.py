"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login (bearer access token)
- Reading and updating the current user's profile
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models import User
from schemas import DataResponse, Token, UserCreate, UserLogin, UserUpdate
from schemas import User as UserSchema
from auth.security import create_access_token, hash_password, verify_password
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _normalize_email(email: str) -> str:
    return email.strip().lower()


@router.post("/register", response_model=DataResponse[UserSchema], status_code=status.HTTP_201_CREATED)
def register(request: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        HTTPException: 400 if email already registered
    """
    email = _normalize_email(request.email)
    logger.info(f"Registration attempt for email: {email}")

    if db.query(User).filter(User.email == email).first():
        logger.info(f"Registration failed: email already exists: {email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    new_user = User(
        name=request.name.strip(),
        email=email,
        password_hash=hash_password(request.password),
        is_active=True,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return DataResponse(data=UserSchema.model_validate(new_user))


@router.post("/login", response_model=Token)
def login(request: UserLogin, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Returns:
        Access token for API requests

    Raises:
        HTTPException: 401 if credentials invalid or user inactive
    """
    email = _normalize_email(request.email)
    logger.info(f"Login attempt for email: {email}")

    user = db.query(User).filter(User.email == email).first()
    if not user or not user.password_hash or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed: invalid credentials for {email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        logger.info(f"Login failed: inactive user: {email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive",
        )

    access_token = create_access_token(user.id)
    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return Token(access_token=access_token)


@router.get("/me", response_model=DataResponse[UserSchema])
def get_current_user_info(current_user: User = Depends(get_current_user)):
    logger.debug(f"Fetching user info for: {current_user.email}")
    return DataResponse(data=UserSchema.model_validate(current_user))


@router.patch("/me", response_model=DataResponse[UserSchema])
def update_current_user(
    request: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update the current user's name, email or password.

    Member display names are read from the user, so a rename is visible in
    every workspace immediately. Comment author names are stored at write
    time and keep the old name.
    """
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    logger.debug(f"Updating user {current_user.id}: fields={sorted(changes)}")

    if "email" in changes:
        email = _normalize_email(changes["email"])
        existing = db.query(User).filter(User.email == email, User.id != current_user.id).first()
        if existing:
            logger.info(f"Profile update failed: email already exists: {email}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered",
            )
        current_user.email = email
    if "name" in changes:
        current_user.name = changes["name"].strip()
    if "password" in changes:
        current_user.password_hash = hash_password(changes["password"])

    db.commit()
    db.refresh(current_user)
    logger.info(f"User {current_user.id} updated profile")
    return DataResponse(data=UserSchema.model_validate(current_user))
