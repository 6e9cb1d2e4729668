"""API dependencies - service wiring and authentication"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from trackyr.config import Settings
from trackyr.core.database import get_db
from trackyr.core.exceptions import UnauthorizedError
from trackyr.core.security import PasswordHasher, TokenCodec
from trackyr.repositories.credential_store import SQLAlchemyCredentialStore
from trackyr.schemas.user import UserResponse
from trackyr.services.auth_service import AuthService
from trackyr.services.rate_limiter import InMemoryRateLimiter

# HTTP Bearer token scheme; missing headers are reported through our own error envelope
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_rate_limiter(request: Request) -> InMemoryRateLimiter:
    return request.app.state.rate_limiter


def get_auth_service(
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> AuthService:
    """Auth service bound to the request's database session"""
    return AuthService(SQLAlchemyCredentialStore(db), codec, hasher)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """
    Get current authenticated user from the bearer access token

    Raises:
        UnauthorizedError: If the header is missing, the token is invalid,
            or the user is gone or inactive
    """
    if not credentials or not credentials.credentials:
        raise UnauthorizedError("No token provided")

    return auth_service.authenticate(credentials.credentials)
