"""
Credential & session management: bcrypt password hashing and the JWT
access/refresh token pair.

Access and refresh tokens are signed with different secrets and carry a
``type`` claim, so one can never be replayed as the other. Only a digest of
the current refresh token is persisted (see ``User.refresh_token_hash``).
"""
import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import NamedTuple

import jwt
from passlib.context import CryptContext

from community_api.config import Settings
from community_api.errors import AuthError

ACCESS = "access"
REFRESH = "refresh"


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


@lru_cache(maxsize=4)
def _password_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, settings: Settings) -> str:
    return _password_context(settings.bcrypt_rounds).hash(password)


def verify_password(password: str, password_hash: str, settings: Settings) -> bool:
    return _password_context(settings.bcrypt_rounds).verify(password, password_hash)


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _encode(user_id: str, token_type: str, secret: str, lifetime: timedelta, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        # jti keeps two tokens issued in the same second distinct
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def generate_tokens(user_id: str, settings: Settings) -> TokenPair:
    access = _encode(
        user_id,
        ACCESS,
        settings.jwt_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
        settings,
    )
    refresh = _encode(
        user_id,
        REFRESH,
        settings.jwt_refresh_secret,
        timedelta(days=settings.refresh_token_expire_days),
        settings,
    )
    return TokenPair(access, refresh)


def _decode(token: str, token_type: str, secret: str, settings: Settings) -> str:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id or payload.get("type") != token_type:
        raise AuthError("Invalid token")
    return user_id


def verify_access_token(token: str, settings: Settings) -> str:
    """Return the user id carried by a valid access token."""
    return _decode(token, ACCESS, settings.jwt_secret, settings)


def verify_refresh_token(token: str, settings: Settings) -> str:
    """Return the user id carried by a valid refresh token."""
    return _decode(token, REFRESH, settings.jwt_refresh_secret, settings)
