"""Pydantic schemas for API validation"""

from trackyr.schemas.token import TokenPayload, AuthTokens
from trackyr.schemas.user import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    UserCreate,
    UserUpdate,
    UserResponse,
    AuthResponse,
    UserListResponse,
)
from trackyr.schemas.response import APIResponse, HealthResponse, DatabaseHealthResponse

__all__ = [
    "TokenPayload", "AuthTokens",
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "LogoutRequest",
    "UserCreate", "UserUpdate", "UserResponse", "AuthResponse", "UserListResponse",
    "APIResponse", "HealthResponse", "DatabaseHealthResponse",
]
