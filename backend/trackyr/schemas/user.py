"""User and authentication schemas"""

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator
from typing import Annotated, List, Optional
from datetime import datetime
import re

from trackyr.schemas.token import AuthTokens

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input.
PASSWORD_MAX_BYTES = 72


def normalize_email(value: str) -> str:
    """Trim and lowercase an email address"""
    return value.strip().lower()


def _normalize_email_input(value):
    return normalize_email(value) if isinstance(value, str) else value


NormalizedEmail = Annotated[EmailStr, BeforeValidator(_normalize_email_input)]


def check_password_strength(password: str) -> str:
    """Require upper, lower and digit, and fit bcrypt's input limit"""
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain at least one number")
    return password


class RegisterRequest(BaseModel):
    """User registration schema"""
    email: NormalizedEmail
    password: str = Field(..., min_length=8, max_length=PASSWORD_MAX_BYTES)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        return check_password_strength(v)


class LoginRequest(BaseModel):
    """User login schema"""
    email: NormalizedEmail
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserCreate(RegisterRequest):
    """User creation schema (users module)"""


class UserUpdate(BaseModel):
    """Partial user update"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[NormalizedEmail] = None


class UserResponse(BaseModel):
    """Public view of a user; never carries the password hash"""
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Result of register/login"""
    user: UserResponse
    tokens: AuthTokens


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    total_pages: int
