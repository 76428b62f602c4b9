"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login (username or email) issuing a JWT, also set as the ``jwt`` cookie
- Logout (clears the cookie)
- Current user lookup
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import EmailStr, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from flowboard import schemas
from flowboard.database import get_db
from flowboard.models import User, UserRole
from flowboard.auth.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    AUTH_COOKIE_NAME,
    COOKIE_DOMAIN,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
    create_access_token,
    hash_password,
    verify_password,
)
from flowboard.auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request/Response schemas
class RegisterRequest(schemas.ApiModel):
    username: schemas.NonBlankStr
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    contact_number: str = ""
    birth_date: Optional[date] = None


class LoginRequest(schemas.ApiModel):
    user_name_or_email: schemas.NonBlankStr
    password: str


class TokenResponse(schemas.ApiModel):
    access_token: str
    token_type: str = "bearer"
    user: schemas.User


def token_for(user: User) -> str:
    role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
    return create_access_token({"sub": str(user.id), "role": role, "email": user.email})


@router.post("/register", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        HTTPException: 400 if the username or email is already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    existing_user = db.execute(
        select(User).where(or_(User.email == request.email, User.username == request.username))
    ).scalars().first()
    if existing_user:
        logger.info(f"Registration failed: username or email already exists: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email already registered",
        )

    new_user = User(
        **request.model_dump(exclude={"password"}),
        password_hash=hash_password(request.password),
        role=UserRole.user,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.critical(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return new_user


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """
    Login with username or email and password.

    Returns the access token in the body and sets it as an httpOnly cookie,
    so browser clients can authenticate without handling the token.

    Raises:
        HTTPException: 401 if credentials are invalid
    """
    logger.info(f"Login attempt for: {request.user_name_or_email}")

    user = db.execute(
        select(User).where(
            or_(User.email == request.user_name_or_email, User.username == request.user_name_or_email)
        )
    ).scalars().first()
    if not user or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed for: {request.user_name_or_email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username/email or password",
        )

    access_token = token_for(user)
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=access_token,
        path="/",  # Must match path in delete_cookie for logout to work
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        domain=COOKIE_DOMAIN,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

    logger.critical(f"User logged in successfully: {user.email} (ID: {user.id})")
    return TokenResponse(access_token=access_token, user=schemas.User.model_validate(user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response):
    """
    Clear the auth cookie.

    Does not require authentication, so users can always log out even with
    an expired token.
    """
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        path="/",
        domain=COOKIE_DOMAIN,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
    )
    logger.info("User logged out")
    # The injected response does not inherit the decorator's status code
    response.status_code = status.HTTP_204_NO_CONTENT
    return response


@router.get("/me", response_model=schemas.User)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    logger.debug(f"Fetching user info for: {current_user.email}")
    return current_user
