from datetime import datetime, timedelta, timezone

import pytest

from trackyr.core.exceptions import ConflictError, InvalidCredentialsError, UnauthorizedError
from trackyr.services.auth_service import AuthService

from conftest import make_codec


def test_register_creates_one_user_and_one_session(auth_service, store):
    result = auth_service.register("u@x.com", "Passw0rd!", first_name="Ann")

    assert result.user.email == "u@x.com"
    assert result.user.first_name == "Ann"
    assert result.tokens.access_token
    assert result.tokens.refresh_token
    assert len(store.users) == 1
    assert list(store.tokens) == [result.tokens.refresh_token]


def test_public_user_never_contains_password_hash(auth_service):
    result = auth_service.register("u@x.com", "Passw0rd!")
    dumped = result.model_dump()
    assert "password_hash" not in dumped["user"]
    assert "password" not in dumped["user"]
    assert "password_hash" not in auth_service.get_user_by_id(result.user.id).model_dump()


def test_register_normalizes_email(auth_service, store):
    result = auth_service.register("  Mixed@Case.COM ", "Passw0rd!")
    assert result.user.email == "mixed@case.com"


def test_duplicate_email_conflicts_case_insensitively(auth_service, store):
    auth_service.register("u@x.com", "Passw0rd!")
    with pytest.raises(ConflictError):
        auth_service.register("U@X.com ", "Passw0rd!")
    assert len(store.users) == 1
    assert len(store.tokens) == 1


def test_stored_expiry_matches_refresh_claim(auth_service, store, codec):
    tokens = auth_service.register("u@x.com", "Passw0rd!").tokens
    claims = codec.verify_refresh(tokens.refresh_token)
    assert store.tokens[tokens.refresh_token].expires_at == claims.expires_at


def test_login_success_updates_last_login_and_adds_session(auth_service, store):
    registered = auth_service.register("u@x.com", "Passw0rd!")
    assert registered.user.last_login_at is None

    result = auth_service.login("U@x.com", "Passw0rd!")

    assert result.user.last_login_at is not None
    assert len(store.tokens) == 2
    assert result.tokens.refresh_token != registered.tokens.refresh_token


def test_login_failures_are_indistinguishable(auth_service, store):
    auth_service.register("a@b.com", "Passw0rd!")

    with pytest.raises(InvalidCredentialsError) as wrong_password:
        auth_service.login("a@b.com", "wrongpw")
    with pytest.raises(InvalidCredentialsError) as unknown_user:
        auth_service.login("nonexistent@b.com", "x")

    assert wrong_password.value.code == unknown_user.value.code
    assert wrong_password.value.message == unknown_user.value.message
    assert wrong_password.value.status_code == 401


def test_login_rejects_inactive_user_with_generic_error(auth_service, store):
    user = auth_service.register("a@b.com", "Passw0rd!").user
    store.users[user.id].is_active = False

    with pytest.raises(InvalidCredentialsError) as exc_info:
        auth_service.login("a@b.com", "Passw0rd!")
    assert exc_info.value.message == "Invalid email or password"


def test_refresh_rotates_and_old_token_is_single_use(auth_service, store):
    original = auth_service.register("u@x.com", "Passw0rd!").tokens

    rotated = auth_service.refresh(original.refresh_token)

    assert rotated.refresh_token != original.refresh_token
    assert original.refresh_token not in store.tokens
    assert rotated.refresh_token in store.tokens
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(original.refresh_token)

    again = auth_service.refresh(rotated.refresh_token)
    assert again.refresh_token not in (original.refresh_token, rotated.refresh_token)
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(rotated.refresh_token)


def test_refresh_with_never_issued_token_fails(auth_service, codec):
    auth_service.register("u@x.com", "Passw0rd!")
    forged = codec.issue_refresh_token("someone", "u@x.com")
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(forged)
    with pytest.raises(UnauthorizedError):
        auth_service.refresh("garbage")


def test_refresh_rejects_access_token(auth_service):
    tokens = auth_service.register("u@x.com", "Passw0rd!").tokens
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(tokens.access_token)


def test_refresh_lazily_deletes_expired_row(store, codec, hasher):
    issuing = AuthService(store, codec, hasher)
    tokens = issuing.register("u@x.com", "Passw0rd!").tokens

    later = datetime.now(timezone.utc) + timedelta(days=8)
    expired_view = AuthService(store, codec, hasher, clock=lambda: later)
    with pytest.raises(UnauthorizedError):
        expired_view.refresh(tokens.refresh_token)
    assert tokens.refresh_token not in store.tokens


def test_refresh_rejects_inactive_owner(auth_service, store):
    result = auth_service.register("u@x.com", "Passw0rd!")
    store.users[result.user.id].is_active = False
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(result.tokens.refresh_token)


def test_concurrent_rotation_has_one_winner(auth_service, store):
    tokens = auth_service.register("u@x.com", "Passw0rd!").tokens

    # Another request consumes the token between our lookup and our delete.
    real_find = store.find_refresh_token

    def find_then_lose_race(token):
        record = real_find(token)
        store.delete_refresh_token(token)
        return record

    store.find_refresh_token = find_then_lose_race
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(tokens.refresh_token)
    assert store.tokens == {}


def test_logout_is_idempotent(auth_service, store):
    tokens = auth_service.register("u@x.com", "Passw0rd!").tokens
    assert auth_service.logout(tokens.refresh_token) is True
    assert auth_service.logout(tokens.refresh_token) is False
    assert auth_service.logout("never-issued") is False
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(tokens.refresh_token)


def test_logout_all_revokes_every_prior_refresh_token(auth_service, store):
    user = auth_service.register("u@x.com", "Passw0rd!").user
    other = auth_service.register("other@x.com", "Passw0rd!")
    sessions = [auth_service.login("u@x.com", "Passw0rd!").tokens.refresh_token for _ in range(3)]

    assert auth_service.logout_all(user.id) == 4

    for token in sessions:
        with pytest.raises(UnauthorizedError):
            auth_service.refresh(token)
    assert auth_service.refresh(other.tokens.refresh_token).refresh_token


def test_register_refresh_logout_scenario(auth_service, store):
    result = auth_service.register("u@x.com", "Passw0rd!")
    assert len(store.users) == 1 and len(store.tokens) == 1

    rotated = auth_service.refresh(result.tokens.refresh_token)
    assert rotated.access_token and rotated.refresh_token
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(result.tokens.refresh_token)

    auth_service.logout(rotated.refresh_token)
    with pytest.raises(UnauthorizedError):
        auth_service.refresh(rotated.refresh_token)


def test_authenticate_resolves_access_token(auth_service, store):
    result = auth_service.register("u@x.com", "Passw0rd!")
    assert auth_service.authenticate(result.tokens.access_token).id == result.user.id

    store.users[result.user.id].is_active = False
    with pytest.raises(UnauthorizedError):
        auth_service.authenticate(result.tokens.access_token)


def test_get_user_by_id_returns_none_when_missing(auth_service):
    assert auth_service.get_user_by_id("missing") is None


def test_sweep_removes_only_expired_rows(auth_service, store):
    result = auth_service.register("u@x.com", "Passw0rd!")
    long_ago = datetime.now(timezone.utc) - timedelta(days=30)
    stale = make_codec(clock=lambda: long_ago).issue_refresh_token(result.user.id, "u@x.com")
    store.create_refresh_token(token=stale, user_id=result.user.id, expires_at=long_ago + timedelta(days=7))

    assert auth_service.sweep_expired_tokens() == 1
    assert list(store.tokens) == [result.tokens.refresh_token]
