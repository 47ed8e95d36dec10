"""
User Models
===========
Pydantic models for accounts and password resets.

The dashboard app speaks camelCase (fullName, newPassword), so those fields
carry aliases. Request fields are optional here on purpose: the routers
answer a missing field with a 400 and a readable message instead of
FastAPI's generic 422.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# REQUEST MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    """
    Request body for POST /auth/register.

    Example Request:
        {
            "fullName": "Amina Yusuf",
            "email": "amina@example.com",
            "password": "secret123"
        }
    """
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[str] = Field(None, alias="fullName")
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot-password."""
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    new_password: Optional[str] = Field(None, alias="newPassword")


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    full_name: str = Field(..., alias="fullName")
    email: str


class UserListItem(UserResponse):
    created_at: datetime = Field(..., alias="createdAt")


class AuthResponse(BaseModel):
    """Returned by register and login. The token goes in an Authorization: Bearer header."""
    user: UserResponse
    token: str


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# INTERNAL RECORDS - What the store hands back
# =============================================================================

class UserRecord(BaseModel):
    id: int
    full_name: str
    email: str
    password_hash: str
    created_at: datetime

    def to_response(self) -> UserResponse:
        return UserResponse(id=self.id, full_name=self.full_name, email=self.email)


class ResetTokenRecord(BaseModel):
    id: int
    user_id: int
    expires_at: datetime
    used_at: Optional[datetime] = None
