"""Auth service - registration, login and refresh-token lifecycle."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional
import logging

from trackyr.core.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    UnauthorizedError,
)
from trackyr.core.security import PasswordHasher, TokenCodec, utcnow
from trackyr.repositories.credential_store import CredentialStore, UserRecord
from trackyr.schemas.token import AuthTokens, TokenPayload
from trackyr.schemas.user import AuthResponse, UserResponse, normalize_email

logger = logging.getLogger(__name__)

INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


class AuthService:
    """
    Orchestrates register/login/refresh/logout over a credential store.

    Refresh tokens are single use: a successful refresh deletes the presented
    token's row before a new pair is handed out, so a rotated token can never
    be exchanged again. Only this class creates or deletes refresh rows.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: TokenCodec,
        hasher: PasswordHasher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.codec = codec
        self.hasher = hasher
        self._clock = clock

    @staticmethod
    def to_public(user: UserRecord) -> UserResponse:
        return UserResponse.model_validate(user)

    def _issue_tokens(self, user_id: str, email: str) -> AuthTokens:
        access_token = self.codec.issue_access_token(user_id, email)
        refresh_token = self.codec.issue_refresh_token(user_id, email)

        # Stored expiry comes from the signed claim so row and token agree.
        claims = self.codec.verify_refresh(refresh_token)
        self.store.create_refresh_token(
            token=refresh_token,
            user_id=user_id,
            expires_at=claims.expires_at,
        )
        return AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.codec.access_expires.total_seconds()),
        )

    def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResponse:
        """
        Create an account and open its first session

        Raises:
            ConflictError: email already registered
        """
        email = normalize_email(email)
        if self.store.find_user_by_email(email):
            raise ConflictError("User with this email already exists")

        password_hash = self.hasher.hash(password)
        with self.store.transaction():
            user = self.store.create_user(
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
            )
            tokens = self._issue_tokens(user.id, user.email)

        logger.info("Registered user %s", user.id)
        return AuthResponse(user=self.to_public(user), tokens=tokens)

    def login(self, email: str, password: str) -> AuthResponse:
        """
        Authenticate by email and password

        Unknown email, inactive account and wrong password all raise the same
        InvalidCredentialsError.
        """
        email = normalize_email(email)
        user = self.store.find_user_by_email(email)

        if not user:
            self.hasher.dummy_verify(password)
            logger.warning("Login failed: unknown email")
            raise InvalidCredentialsError()

        if not self.hasher.verify(password, user.password_hash) or not user.is_active:
            logger.warning("Login failed for user %s", user.id)
            raise InvalidCredentialsError()

        with self.store.transaction():
            user = self.store.update_last_login(user.id, self._clock()) or user
            tokens = self._issue_tokens(user.id, user.email)

        logger.info("User %s logged in", user.id)
        return AuthResponse(user=self.to_public(user), tokens=tokens)

    def refresh(self, refresh_token: str) -> AuthTokens:
        """
        Exchange a refresh token for a new pair, consuming the old one

        Raises:
            UnauthorizedError: token invalid, unknown, already used, expired,
                or owner inactive
        """
        try:
            claims = self.codec.verify_refresh(refresh_token)
        except InvalidTokenError:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN, code=InvalidTokenError.code)

        stored = self.store.find_refresh_token(refresh_token)
        if not stored:
            logger.warning("Refresh rejected: token not recognized (user %s)", claims.user_id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN, code=InvalidTokenError.code)

        if stored.expires_at <= self._clock():
            self.store.delete_refresh_token(refresh_token)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN, code=InvalidTokenError.code)

        if not stored.user or not stored.user.is_active:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN, code=InvalidTokenError.code)

        # Only the caller whose delete removed the row may rotate. The delete
        # and the new row commit together.
        with self.store.transaction():
            if not self.store.delete_refresh_token(refresh_token):
                logger.warning("Refresh rejected: token already rotated (user %s)", stored.user_id)
                raise UnauthorizedError(INVALID_REFRESH_TOKEN, code=InvalidTokenError.code)

            tokens = self._issue_tokens(stored.user_id, stored.user.email)
        logger.info("Rotated refresh token for user %s", stored.user_id)
        return tokens

    def logout(self, refresh_token: str) -> bool:
        """Revoke one session. Returns whether a row was removed; never raises for unknown tokens."""
        return self.store.delete_refresh_token(refresh_token)

    def logout_all(self, user_id: str) -> int:
        """Revoke every refresh token of a user.

        Access tokens already issued stay valid until they expire.
        """
        count = self.store.delete_all_refresh_tokens_for_user(user_id)
        logger.info("Revoked %d sessions for user %s", count, user_id)
        return count

    def get_user_by_id(self, user_id: str) -> Optional[UserResponse]:
        user = self.store.find_user_by_id(user_id)
        return self.to_public(user) if user else None

    def authenticate(self, access_token: str) -> UserResponse:
        """
        Resolve a bearer access token to its active user

        Raises:
            UnauthorizedError: token invalid or user missing/inactive
        """
        claims: TokenPayload = self.codec.verify_access(access_token)
        user = self.get_user_by_id(claims.user_id)
        if not user or not user.is_active:
            raise UnauthorizedError("Invalid or expired token", code=InvalidTokenError.code)
        return user

    def sweep_expired_tokens(self) -> int:
        count = self.store.delete_expired_refresh_tokens(self._clock())
        if count:
            logger.info("Swept %d expired refresh tokens", count)
        return count
