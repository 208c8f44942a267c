"""User profiles, avatar uploads and user search."""
import logging
from dataclasses import dataclass
from typing import Optional

from opentelemetry import trace
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_api import store
from community_api.clients.media_store import PROFILES_FOLDER, MediaStore
from community_api.errors import ConflictError, ExternalServiceError, ValidationError
from community_api.models import User
from community_api.store import Page
from community_api.telemetry import BEST_EFFORT_FAILURES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MIN_SEARCH_LENGTH = 2
MAX_BIO_LENGTH = 150


@dataclass
class ProfileView:
    user: User
    is_following: Optional[bool] = None


class UserService:
    def __init__(self, db: AsyncSession, media: Optional[MediaStore] = None) -> None:
        self.db = db
        self.media = media

    async def get_profile(self, user_id: str, viewer: Optional[User] = None) -> ProfileView:
        user = await store.get_active_user(self.db, user_id)
        view = ProfileView(user=user)
        if viewer is not None and viewer.id != user.id:
            view.is_following = await store.is_following(self.db, viewer.id, user.id)
        return view

    async def update_profile(
        self, actor: User, username: Optional[str] = None, bio: Optional[str] = None
    ) -> User:
        if username is not None and username != actor.username:
            taken = await self.db.execute(
                select(User.id).where(User.username == username, User.id != actor.id)
            )
            if taken.first() is not None:
                raise ConflictError("Username already taken")
            actor.username = username
        if bio is not None:
            bio = bio.strip()
            if len(bio) > MAX_BIO_LENGTH:
                raise ValidationError(
                    errors=[{"field": "bio", "message": "Bio cannot exceed 150 characters"}]
                )
            actor.bio = bio

        await self.db.commit()
        await self.db.refresh(actor)
        logger.info("Profile updated for %s", actor.id)
        return actor

    async def upload_profile_picture(self, actor: User, image: bytes) -> User:
        with tracer.start_as_current_span("upload_profile_picture") as span:
            span.set_attribute("user.id", actor.id)
            if not image:
                raise ValidationError("Image is required")

            previous_key = actor.profile_picture_key
            actor.profile_picture_key = self.media.upload_image(image, PROFILES_FOLDER)
            await self.db.commit()
            await self.db.refresh(actor)

            if previous_key:
                try:
                    self.media.delete_object(previous_key)
                except ExternalServiceError as exc:
                    BEST_EFFORT_FAILURES_TOTAL.labels(stage="media_cleanup").inc()
                    logger.warning("Failed to delete old profile picture %s: %s", previous_key, exc)
            return actor

    async def search(
        self, query: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        term = (query or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            raise ValidationError("Search query must be at least 2 characters")

        stmt = (
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    User.username.icontains(term, autoescape=True),
                    User.email.icontains(term, autoescape=True),
                    User.bio.icontains(term, autoescape=True),
                ),
            )
            .order_by(User.follower_count.desc(), User.username.asc())
        )
        if viewer is not None:
            stmt = stmt.where(User.id != viewer.id)
        result = await store.paginate(self.db, stmt, page, limit)

        followed = (
            await store.following_among(self.db, viewer.id, (u.id for u in result.items))
            if viewer is not None
            else set()
        )
        result.items = [ProfileView(user=u, is_following=u.id in followed) for u in result.items]
        return result
