import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from trackyr.config import Settings
from trackyr.core.database import Database
from trackyr.core.exceptions import ConflictError
from trackyr.core.security import PasswordHasher, TokenCodec
from trackyr.main import create_app
from trackyr.repositories.credential_store import RefreshTokenRecord, UserRecord
from trackyr.services.auth_service import AuthService

ACCESS_SECRET = "test-access-secret-0123456789abcdef"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef"


class InMemoryCredentialStore:
    """Dict-backed CredentialStore with the same delete-if-exists semantics as the SQL one."""

    def __init__(self) -> None:
        self.users: Dict[str, UserRecord] = {}
        self.tokens: Dict[str, RefreshTokenRecord] = {}

    @contextmanager
    def transaction(self):
        users = {k: replace(v) for k, v in self.users.items()}
        tokens = dict(self.tokens)
        try:
            yield
        except Exception:
            self.users, self.tokens = users, tokens
            raise

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return replace(user)
        return None

    def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    def create_user(self, *, email, password_hash, first_name=None, last_name=None) -> UserRecord:
        if self.find_user_by_email(email):
            raise ConflictError("User with this email already exists")
        now = datetime.now(timezone.utc)
        user = UserRecord(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return replace(user)

    def update_last_login(self, user_id: str, at: datetime) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        user.last_login_at = at
        user.updated_at = at
        return replace(user)

    def create_refresh_token(self, *, token, user_id, expires_at) -> RefreshTokenRecord:
        if token in self.tokens:
            raise ValueError("duplicate refresh token")
        record = RefreshTokenRecord(token=token, user_id=user_id, expires_at=expires_at)
        self.tokens[token] = record
        return replace(record)

    def find_refresh_token(self, token: str) -> Optional[RefreshTokenRecord]:
        record = self.tokens.get(token)
        if not record:
            return None
        return replace(record, user=self.find_user_by_id(record.user_id))

    def delete_refresh_token(self, token: str) -> bool:
        return self.tokens.pop(token, None) is not None

    def delete_all_refresh_tokens_for_user(self, user_id: str) -> int:
        doomed = [t for t, r in self.tokens.items() if r.user_id == user_id]
        for token in doomed:
            del self.tokens[token]
        return len(doomed)

    def delete_expired_refresh_tokens(self, now: datetime) -> int:
        doomed = [t for t, r in self.tokens.items() if r.expires_at < now]
        for token in doomed:
            del self.tokens[token]
        return len(doomed)


def make_codec(clock=None) -> TokenCodec:
    kwargs = {"clock": clock} if clock else {}
    return TokenCodec(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        access_expires=timedelta(minutes=15),
        refresh_expires=timedelta(days=7),
        **kwargs,
    )


@pytest.fixture
def codec():
    return make_codec()


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast.
    return PasswordHasher(rounds=4)


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def auth_service(store, codec, hasher):
    return AuthService(store, codec, hasher)


@pytest.fixture
def database():
    db = Database("sqlite://", init_mode="create_all")
    db.connect()
    try:
        yield db
    finally:
        db.disconnect()


@pytest.fixture
def db_session(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        DB_INIT_MODE="create_all",
        BCRYPT_ROUNDS=4,
        JWT_ACCESS_SECRET=ACCESS_SECRET,
        JWT_REFRESH_SECRET=REFRESH_SECRET,
        RATE_LIMIT_MAX_REQUESTS=1000,
        LOG_FILE="",
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def register(client, email="u@x.com", password="Passw0rd!", **extra):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def bearer(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}
