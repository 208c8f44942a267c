"""Password hashing and the JWT token pair."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from community_api.errors import AuthError
from community_api.security import (
    digest_token,
    generate_tokens,
    hash_password,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)


def test_password_hash_round_trip(settings):
    hashed = hash_password("Passw0rd1", settings)

    assert hashed != "Passw0rd1"
    assert verify_password("Passw0rd1", hashed, settings)
    assert not verify_password("passw0rd1", hashed, settings)


def test_token_pair_carries_user_id(settings):
    tokens = generate_tokens("user-1", settings)

    assert verify_access_token(tokens.access_token, settings) == "user-1"
    assert verify_refresh_token(tokens.refresh_token, settings) == "user-1"


def test_tokens_are_unique_per_issue(settings):
    first = generate_tokens("user-1", settings)
    second = generate_tokens("user-1", settings)
    assert first.refresh_token != second.refresh_token


def test_access_and_refresh_are_not_interchangeable(settings):
    tokens = generate_tokens("user-1", settings)

    with pytest.raises(AuthError):
        verify_access_token(tokens.refresh_token, settings)
    with pytest.raises(AuthError):
        verify_refresh_token(tokens.access_token, settings)


def test_expired_token(settings):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode(
        {"sub": "user-1", "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(AuthError, match="Token expired"):
        verify_access_token(token, settings)


def test_garbage_token(settings):
    with pytest.raises(AuthError, match="Invalid token"):
        verify_access_token("not-a-jwt", settings)


def test_digest_is_stable_sha256():
    assert digest_token("abc") == digest_token("abc")
    assert len(digest_token("abc")) == 64
