"""Authentication routes"""

from fastapi import APIRouter, Depends, status, Request

from trackyr.api.deps import (
    get_auth_service,
    get_current_user,
    get_rate_limiter,
    get_settings,
)
from trackyr.config import Settings
from trackyr.core.exceptions import RateLimitExceededError
from trackyr.schemas.response import APIResponse
from trackyr.schemas.user import (
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    UserResponse,
)
from trackyr.services.auth_service import AuthService
from trackyr.services.rate_limiter import InMemoryRateLimiter

router = APIRouter()


@router.post("/register", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Register a new account

    Returns:
        Public user and a fresh token pair
    """
    result = auth_service.register(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return APIResponse(message="User registered successfully", data=result.model_dump(mode="json"))


@router.post("/login", response_model=APIResponse, status_code=status.HTTP_200_OK)
def login(
    body: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    """
    Login endpoint - authenticate user and return JWT tokens

    Args:
        body: Email and password

    Returns:
        Public user and a fresh token pair
    """
    client_ip = request.client.host if request.client else "unknown"
    key = f"login:min:{client_ip}:{body.email}"
    if not limiter.allow(key, settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60):
        raise RateLimitExceededError("Too many login attempts. Please wait a minute.", retry_after=60)

    result = auth_service.login(body.email, body.password)
    return APIResponse(message="Login successful", data=result.model_dump(mode="json"))


@router.post("/refresh", response_model=APIResponse)
def refresh_token(
    body: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new pair; the presented token is consumed
    """
    tokens = auth_service.refresh(body.refresh_token)
    return APIResponse(message="Token refreshed successfully", data={"tokens": tokens.model_dump()})


@router.post("/logout", response_model=APIResponse)
def logout(
    body: LogoutRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Logout endpoint - revoke one refresh token (idempotent)
    """
    revoked = auth_service.logout(body.refresh_token)
    return APIResponse(message="Logged out successfully", data={"refresh_token_revoked": revoked})


@router.post("/logout-all", response_model=APIResponse)
def logout_all(
    current_user: UserResponse = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Revoke every refresh token of the current user
    """
    revoked = auth_service.logout_all(current_user.id)
    return APIResponse(message="Logged out from all devices", data={"sessions_revoked": revoked})


@router.get("/me", response_model=APIResponse)
def get_current_user_info(
    current_user: UserResponse = Depends(get_current_user)
):
    """
    Get current user information
    """
    return APIResponse(message="User profile retrieved", data=current_user.model_dump(mode="json"))
