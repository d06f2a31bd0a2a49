"""
Authentication API endpoints.

Provides:
- User registration
- Login (JWT token generation)
- Current user lookup
- Account lockout protection
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
import logging

from core.database import get_db
from core.exceptions import UnauthorizedError
from core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    ACCESS_TOKEN_EXPIRE_MINUTES,
)
from core.auth import get_current_user
from core.account_security import (
    record_login_attempt,
    is_account_locked,
    get_remaining_attempts
)
from core.password_policy import validate_password
from models import User
from schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class UserRegister(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str
    username: Optional[str] = Field(default=None, max_length=40)
    gym: Optional[str] = None
    goal: Optional[str] = None


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = ACCESS_TOKEN_EXPIRE_MINUTES * 60  # seconds
    user: Optional[UserResponse] = None


def _token_response(user: User) -> dict:
    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role}
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": UserResponse.model_validate(user),
    }


def _invalid_credentials(email: str) -> HTTPException:
    record_login_attempt(email, success=False)
    remaining = get_remaining_attempts(email)

    detail = "Invalid email or password"
    if 0 < remaining <= 2:
        detail += f" ({remaining} attempts remaining)"
    elif remaining == 0:
        detail = "Account temporarily locked due to too many failed attempts"

    return UnauthorizedError(detail)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db)
):
    """
    Register a new user account.

    New accounts start on the free tier with the default `user` role.
    """
    email = user_data.email.strip().lower()

    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    ok, errors = validate_password(user_data.password)
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=errors[0]
        )

    user = User(
        email=email,
        password_hash=get_password_hash(user_data.password),
        username=user_data.username or email.split("@")[0],
        gym=user_data.gym,
        goal=user_data.goal,
        role="user",
        tier="free",
        best_lifts={},
        stats={},
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User registered", extra={"extra_fields": {"user_id": str(user.id)}})
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token.

    Returns access token valid for 30 days.
    Implements account lockout after 5 failed attempts.
    """
    email = credentials.email.lower()

    locked, seconds_remaining = is_account_locked(email)
    if locked:
        minutes_remaining = (seconds_remaining or 0) // 60 + 1
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Account temporarily locked. Try again in {minutes_remaining} minutes.",
            headers={"Retry-After": str(seconds_remaining)},
        )

    user = db.query(User).filter(User.email == email).first()

    # Failed attempts are recorded for unknown emails too (prevents enumeration)
    if not user or not user.password_hash:
        raise _invalid_credentials(email)

    if not verify_password(credentials.password, user.password_hash):
        raise _invalid_credentials(email)

    if user.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is blocked",
        )

    record_login_attempt(email, success=True)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user."""
    return current_user
