"""Security utilities - password hashing and JWT signing"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
import secrets

import bcrypt
from jose import JWTError, jwt

from trackyr.core.exceptions import InvalidTokenError
from trackyr.schemas.token import TokenPayload

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """Salted bcrypt hashing with a tunable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: Optional[bytes] = None

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plain text password

        Returns:
            str: Hashed password
        """
        return bcrypt.hashpw(
            password.encode('utf-8'),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode('utf-8')

    def verify(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash

        Args:
            password: Plain text password
            hashed_password: Hashed password

        Returns:
            bool: True if password matches
        """
        try:
            return bcrypt.checkpw(
                password.encode('utf-8'),
                hashed_password.encode('utf-8')
            )
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, password: str) -> None:
        """Spend the same work as a real verify when there is no user to check against."""
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(
                secrets.token_urlsafe(16).encode('utf-8'),
                bcrypt.gensalt(rounds=self.rounds)
            )
        try:
            bcrypt.checkpw(password.encode('utf-8'), self._dummy_hash)
        except ValueError:
            pass


class TokenCodec:
    """
    Issue and verify HS256 access/refresh tokens.

    Access and refresh tokens are signed with different secrets and carry a
    ``typ`` claim, so neither kind is accepted in place of the other. Every
    verification failure surfaces as the same ``InvalidTokenError``.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta,
        refresh_expires: timedelta,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Token signing secrets must be non-empty")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self.algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            access_secret=settings.JWT_ACCESS_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            access_expires=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_expires=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=settings.JWT_ALGORITHM,
        )

    def _encode(self, user_id: str, email: str, token_type: str, secret: str, lifetime: timedelta) -> str:
        now = self._clock()
        to_encode: Dict[str, Any] = {
            "sub": str(user_id),
            "email": email,
            "typ": token_type,
            "iat": now,
            "exp": now + lifetime,
            "jti": secrets.token_urlsafe(16),  # Unique token ID
        }
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def _decode(self, token: str, token_type: str, secret: str) -> TokenPayload:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_iat": True, "require_sub": True},
            )
        except JWTError:
            raise InvalidTokenError()

        if claims.get("typ") != token_type or not claims.get("email"):
            raise InvalidTokenError()

        try:
            return TokenPayload(
                user_id=claims["sub"],
                email=claims["email"],
                issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
                token_id=claims.get("jti"),
            )
        except (TypeError, ValueError, OverflowError):
            raise InvalidTokenError()

    def issue_access_token(self, user_id: str, email: str) -> str:
        return self._encode(user_id, email, ACCESS_TOKEN_TYPE, self._access_secret, self.access_expires)

    def issue_refresh_token(self, user_id: str, email: str) -> str:
        return self._encode(user_id, email, REFRESH_TOKEN_TYPE, self._refresh_secret, self.refresh_expires)

    def verify_access(self, token: str) -> TokenPayload:
        """
        Decode and verify an access token

        Raises:
            InvalidTokenError: bad signature, malformed, wrong type or expired
        """
        return self._decode(token, ACCESS_TOKEN_TYPE, self._access_secret)

    def verify_refresh(self, token: str) -> TokenPayload:
        """
        Decode and verify a refresh token

        Raises:
            InvalidTokenError: bad signature, malformed, wrong type or expired
        """
        return self._decode(token, REFRESH_TOKEN_TYPE, self._refresh_secret)
