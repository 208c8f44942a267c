"""Pytest configuration and shared fixtures for Community API tests."""
import os

# Tracing must stay off before community_api.main builds its module-level app.
os.environ.setdefault("OTEL_ENABLED", "false")

from io import BytesIO
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from community_api.clients.email_client import Mailer
from community_api.clients.media_store import MediaStore
from community_api.config import Settings
from community_api.database import build_engine, build_session_factory, init_db
from community_api.main import create_app
from community_api.models import User
from community_api.security import hash_password
from community_api.services.notifications import NotificationFanout

PASSWORD = "Passw0rd1"


# =============================================================================
# Configuration & collaborators
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'community.db'}",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        bcrypt_rounds=4,
        otel_enabled=False,
        redis_url=None,
        smtp_host=None,
    )


@pytest.fixture
def s3() -> MagicMock:
    """boto3 S3 client double; pre-signed URLs echo the object key."""
    client = MagicMock()
    client.generate_presigned_url.side_effect = (
        lambda op, Params, ExpiresIn: f"https://media.test/{Params['Key']}"
    )
    return client


@pytest.fixture
def media_store(s3) -> MediaStore:
    return MediaStore(s3, "test-bucket", url_ttl=60, max_dimension=800)


@pytest.fixture
def mailer() -> AsyncMock:
    return AsyncMock(spec=Mailer)


@pytest.fixture
def png_bytes() -> bytes:
    image = Image.new("RGBA", (1200, 900), (10, 120, 200, 255))
    out = BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier(session_factory, mailer) -> NotificationFanout:
    # No BackgroundTasks outside a request: email delivery runs inline.
    return NotificationFanout(session_factory, mailer)


@pytest.fixture
def make_user(db, settings) -> Callable:
    async def _make(username: str, **fields) -> User:
        user = User(
            username=username,
            email=f"{username}@mail.com",
            password_hash=hash_password(PASSWORD, settings),
            **fields,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
async def alice(make_user) -> User:
    return await make_user("alice")


@pytest.fixture
async def bob(make_user) -> User:
    return await make_user("bob")


@pytest.fixture
async def carol(make_user) -> User:
    return await make_user("carol")


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def client(settings, media_store, mailer):
    app = create_app(settings, media_store=media_store, mailer=mailer)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client) -> Callable:
    """Register a user over HTTP and return (user json, auth headers)."""

    def _register(username: str, password: str = PASSWORD):
        resp = client.post(
            "/api/auth/register",
            json={"username": username, "email": f"{username}@mail.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        return data["user"], {"Authorization": f"Bearer {data['accessToken']}"}

    return _register
