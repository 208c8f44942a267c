"""
Dependency wiring for the FastAPI app.

Long-lived clients are created in the application lifespan and read back
from ``request.app.state``.
"""
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import BackgroundTasks, Depends, Path, Query, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_api import store
from community_api.clients.email_client import Mailer
from community_api.clients.media_store import MediaStore
from community_api.config import Settings
from community_api.database import get_db
from community_api.errors import ApiError, AuthError, RateLimitError, ValidationError
from community_api.models import User
from community_api.security import verify_access_token
from community_api.services.auth import AuthService
from community_api.services.content import ContentService
from community_api.services.engagement import EngagementService
from community_api.services.notifications import NotificationFanout, NotificationService
from community_api.services.social_graph import SocialGraphService
from community_api.services.users import UserService

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

EntityId = Annotated[str, Path(pattern=UUID_PATTERN)]
DbSession = Annotated[AsyncSession, Depends(get_db)]

_bearer = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_notifier(
    background: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    mailer: Mailer = Depends(get_mailer),
) -> NotificationFanout:
    return NotificationFanout(session_factory, mailer, background)


# ─────────────────────────── Authentication ───────────────────────────────

async def get_current_user(
    db: DbSession,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_app_settings),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token is required")
    user_id = verify_access_token(credentials.credentials, settings)
    user = await store.get_user(db, user_id)
    if user is None or not user.is_active:
        raise AuthError("Invalid token or user not found")
    return user


async def get_optional_user(
    db: DbSession,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_app_settings),
) -> Optional[User]:
    """The caller if a valid bearer token was sent, otherwise anonymous."""
    if credentials is None:
        return None
    try:
        return await get_current_user(db, credentials, settings)
    except ApiError:
        return None


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]


# ─────────────────────────── Pagination ───────────────────────────────────

@dataclass
class PageParams:
    page: int
    limit: int


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, limit=limit)


Paging = Annotated[PageParams, Depends(page_params)]


# ─────────────────────────── Rate limiting ────────────────────────────────

async def enforce_rate_limit(request: Request) -> None:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    client_id = request.client.host if request.client else "unknown"
    if not await limiter.hit(client_id):
        raise RateLimitError()


# ─────────────────────────── Services ─────────────────────────────────────

def get_auth_service(db: DbSession, settings: Settings = Depends(get_app_settings)) -> AuthService:
    return AuthService(db, settings)


def get_user_service(db: DbSession, media: MediaStore = Depends(get_media_store)) -> UserService:
    return UserService(db, media)


def get_social_graph(db: DbSession, notifier: NotificationFanout = Depends(get_notifier)) -> SocialGraphService:
    return SocialGraphService(db, notifier)


def get_engagement(db: DbSession, notifier: NotificationFanout = Depends(get_notifier)) -> EngagementService:
    return EngagementService(db, notifier)


def get_content_service(
    db: DbSession,
    notifier: NotificationFanout = Depends(get_notifier),
    media: MediaStore = Depends(get_media_store),
) -> ContentService:
    return ContentService(db, notifier, media)


def get_notification_service(db: DbSession) -> NotificationService:
    return NotificationService(db)


async def read_image_upload(upload: Optional[UploadFile], settings: Settings) -> bytes:
    """Bytes of an ``image/*`` upload no larger than ``max_upload_bytes``."""
    if upload is None:
        raise ValidationError("Image is required")
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")
    data = await upload.read(settings.max_upload_bytes + 1)
    if not data:
        raise ValidationError("Image is required")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"Image must be at most {settings.max_upload_bytes // (1024 * 1024)}MB")
    return data
