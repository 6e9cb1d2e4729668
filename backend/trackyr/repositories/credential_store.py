"""Credential store - persistence boundary for users and refresh tokens."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ContextManager, Iterator, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from trackyr.core.exceptions import ConflictError
from trackyr.models.refresh_token import RefreshToken
from trackyr.models.user import User


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored value is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class RefreshTokenRecord:
    token: str
    user_id: str
    expires_at: datetime
    user: Optional[UserRecord] = None


class CredentialStore(Protocol):
    """Operations the auth service needs from persistence."""

    def transaction(self) -> ContextManager[None]:
        """Group writes so they commit together or not at all."""
        ...

    def find_user_by_email(self, email: str) -> Optional[UserRecord]: ...

    def find_user_by_id(self, user_id: str) -> Optional[UserRecord]: ...

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRecord:
        """Raises ConflictError when the email is already taken."""
        ...

    def update_last_login(self, user_id: str, at: datetime) -> Optional[UserRecord]: ...

    def create_refresh_token(self, *, token: str, user_id: str, expires_at: datetime) -> RefreshTokenRecord: ...

    def find_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        """Return the row with its owning user attached."""
        ...

    def delete_refresh_token(self, token: str) -> bool:
        """Delete if present; True only for the call that actually removed the row."""
        ...

    def delete_all_refresh_tokens_for_user(self, user_id: str) -> int: ...

    def delete_expired_refresh_tokens(self, now: datetime) -> int: ...


def _user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        password_hash=user.password_hash,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=bool(user.is_active),
        last_login_at=as_utc(user.last_login_at),
        created_at=as_utc(user.created_at),
        updated_at=as_utc(user.updated_at),
    )


class SQLAlchemyCredentialStore:
    """CredentialStore backed by a SQLAlchemy session.

    Each write commits on its own unless it runs inside ``transaction()``,
    in which case it is only flushed and the outermost block commits.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
            if self._depth == 1:
                self.db.commit()
        except Exception:
            if self._depth == 1:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    def _commit(self) -> None:
        if self._depth:
            self.db.flush()
        else:
            self.db.commit()

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        user = self.db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        return _user_record(user) if user else None

    def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = self.db.get(User, user_id)
        return _user_record(user) if user else None

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRecord:
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
        )
        self.db.add(user)
        try:
            self._commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("User with this email already exists")
        self.db.refresh(user)
        return _user_record(user)

    def update_last_login(self, user_id: str, at: datetime) -> Optional[UserRecord]:
        user = self.db.get(User, user_id)
        if not user:
            return None
        user.last_login_at = at
        user.updated_at = at
        self._commit()
        self.db.refresh(user)
        return _user_record(user)

    def create_refresh_token(self, *, token: str, user_id: str, expires_at: datetime) -> RefreshTokenRecord:
        record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.db.add(record)
        self._commit()
        return RefreshTokenRecord(token=token, user_id=user_id, expires_at=as_utc(expires_at))

    def find_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        record = self.db.execute(
            select(RefreshToken)
            .options(joinedload(RefreshToken.user))
            .where(RefreshToken.token == token)
        ).scalar_one_or_none()
        if not record:
            return None
        return RefreshTokenRecord(
            token=record.token,
            user_id=record.user_id,
            expires_at=as_utc(record.expires_at),
            user=_user_record(record.user) if record.user else None,
        )

    def delete_refresh_token(self, token: str) -> bool:
        result = self.db.execute(
            delete(RefreshToken).where(RefreshToken.token == token).execution_options(synchronize_session=False)
        )
        self._commit()
        return result.rowcount > 0

    def delete_all_refresh_tokens_for_user(self, user_id: str) -> int:
        result = self.db.execute(
            delete(RefreshToken).where(RefreshToken.user_id == user_id).execution_options(synchronize_session=False)
        )
        self._commit()
        return result.rowcount

    def delete_expired_refresh_tokens(self, now: datetime) -> int:
        result = self.db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < now).execution_options(synchronize_session=False)
        )
        self._commit()
        return result.rowcount
