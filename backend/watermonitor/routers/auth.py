"""
Auth API Router
===============

Account endpoints for the dashboard app.

ALL ENDPOINTS:
-------------
POST   /auth/register          - Create an account, get a token
POST   /auth/login             - Log in, get a token
POST   /auth/forgot-password   - Email a reset link
POST   /auth/reset-password    - Set a new password with the emailed token
GET    /users                  - List users (needs Authorization: Bearer <token>)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from watermonitor.exceptions import DuplicateEmailError, StoreError
from watermonitor.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserListItem,
    UserRecord,
)
from watermonitor.utils.validation import validate_email, validate_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(tags=["users"])

RESET_REQUESTED_MESSAGE = "If that email exists, a reset link has been sent."


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================

_auth_service = None  # This gets set when the app starts


def set_auth_service(service):
    """Called when the app starts to hand the router the auth service."""
    global _auth_service
    _auth_service = service


def get_auth_service():
    if _auth_service is None:
        raise HTTPException(status_code=500, detail="Server not fully started yet")
    return _auth_service


def _extract_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    if not header.lower().startswith("bearer "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None


def require_user(request: Request, service=Depends(get_auth_service)) -> UserRecord:
    """Dependency: the logged-in user, or a 401."""
    token = _extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        user = service.authenticate(token)
    except StoreError as e:
        logger.error(f"Session lookup failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to check session")

    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


# =============================================================================
# ACCOUNT ENDPOINTS
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=201)
def register(request: RegisterRequest, service=Depends(get_auth_service)):
    """Create an account. Emails are case-insensitive."""
    if not request.full_name or not request.email or not request.password:
        raise HTTPException(status_code=400, detail="fullName, email and password are required")
    if not validate_email(request.email):
        raise HTTPException(status_code=400, detail="That doesn't look like a valid email address")

    try:
        return service.register(request.full_name, request.email, request.password)
    except DuplicateEmailError:
        raise HTTPException(status_code=409, detail="Email already exists")
    except StoreError as e:
        logger.error(f"Registration error: {e}")
        raise HTTPException(status_code=500, detail="Failed to register user")


@router.post("/login", response_model=AuthResponse)
def login(request: LoginRequest, service=Depends(get_auth_service)):
    if not request.email or not request.password:
        raise HTTPException(status_code=400, detail="email and password are required")

    try:
        result = service.login(request.email, request.password)
    except StoreError as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Login failed")

    if result is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return result


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(request: ForgotPasswordRequest, service=Depends(get_auth_service)):
    """
    Email a reset link.

    The answer is the same whether or not the email has an account.
    """
    if not request.email:
        raise HTTPException(status_code=400, detail="email is required")

    try:
        service.request_password_reset(request.email)
    except StoreError as e:
        logger.error(f"Forgot password error: {e}")
        raise HTTPException(status_code=500, detail="Failed to process password reset request")

    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(request: ResetPasswordRequest, service=Depends(get_auth_service)):
    token = (request.token or "").strip()
    new_password = (request.new_password or "").strip()

    if not token or not new_password:
        raise HTTPException(status_code=400, detail="token and newPassword are required")
    if not validate_password(new_password):
        raise HTTPException(status_code=400, detail="newPassword must be at least 6 characters")

    try:
        ok = service.reset_password(token, new_password)
    except StoreError as e:
        logger.error(f"Reset password error: {e}")
        raise HTTPException(status_code=500, detail="Failed to reset password")

    if not ok:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    return MessageResponse(message="Password reset successful")


# =============================================================================
# USERS
# =============================================================================

@users_router.get("/users", response_model=list[UserListItem])
def list_users(user: UserRecord = Depends(require_user), service=Depends(get_auth_service)):
    """All registered users, oldest first."""
    try:
        users = service.store.list_users()
    except StoreError as e:
        logger.error(f"[/users] Error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch users")

    return [
        UserListItem(id=u.id, full_name=u.full_name, email=u.email, created_at=u.created_at)
        for u in users
    ]
