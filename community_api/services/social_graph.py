"""
Follow / unfollow and follower listings.

The ``follows`` edge row is the authoritative set membership. The two
denormalised counters (follower's ``following_count``, followee's
``follower_count``) are adjusted with two independent single-row atomic
updates after the edge changes; there is no cross-row transaction tying
them together, so concurrent follow/unfollow of the same pair can leave
the counters briefly skewed.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from opentelemetry import trace
from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from community_api import store
from community_api.errors import AlreadyFollowingError, SelfFollowError
from community_api.models import Follow, NotificationType, User
from community_api.services.notifications import NotificationFanout
from community_api.store import Page
from community_api.telemetry import FOLLOW_EVENTS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class FollowResult:
    is_following: bool
    is_follow_back: bool
    follower_count: int
    following_count: int


@dataclass
class UserEntry:
    user: User
    is_following: bool


def _decrement(column):
    """``column - 1`` clamped at zero, evaluated in the database."""
    return case((column > 0, column - 1), else_=0)


class SocialGraphService:
    def __init__(self, db: AsyncSession, notifier: NotificationFanout) -> None:
        self.db = db
        self.notifier = notifier

    async def follow_user(self, actor: User, target_id: str) -> FollowResult:
        with tracer.start_as_current_span("follow_user") as span:
            span.set_attribute("follow.actor", actor.id)
            span.set_attribute("follow.target", target_id)
            actor_id, actor_name = actor.id, actor.username

            if actor_id == target_id:
                raise SelfFollowError()

            target = await store.get_active_user(self.db, target_id)
            if await store.is_following(self.db, actor_id, target_id):
                raise AlreadyFollowingError()
            is_follow_back = await store.is_following(self.db, target_id, actor_id)

            self.db.add(Follow(follower_id=actor_id, followee_id=target_id))
            try:
                await self.db.flush()
            except IntegrityError as exc:
                # A concurrent request inserted the same edge first.
                await self.db.rollback()
                raise AlreadyFollowingError() from exc

            await self.db.execute(
                update(User)
                .where(User.id == actor_id)
                .values(following_count=User.following_count + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                update(User)
                .where(User.id == target_id)
                .values(follower_count=User.follower_count + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            FOLLOW_EVENTS_TOTAL.labels(action="follow").inc()
            logger.info("%s followed %s", actor_id, target_id)

            await self.db.refresh(actor)
            await self.db.refresh(target)
            result = FollowResult(
                is_following=True,
                is_follow_back=is_follow_back,
                follower_count=target.follower_count,
                following_count=actor.following_count,
            )

            notification = await self.notifier.notify(
                target.id,
                actor_id,
                NotificationType.FOLLOW,
                f"{actor_name} started following you",
            )
            await self.notifier.notify_by_email(
                notification, target.email, NotificationType.FOLLOW, {"senderName": actor_name}
            )
            return result

    async def unfollow_user(self, actor: User, target_id: str) -> FollowResult:
        with tracer.start_as_current_span("unfollow_user") as span:
            span.set_attribute("follow.actor", actor.id)
            span.set_attribute("follow.target", target_id)
            actor_id = actor.id

            target = await store.get_active_user(self.db, target_id)

            removed = await self.db.execute(
                delete(Follow).where(
                    Follow.follower_id == actor_id,
                    Follow.followee_id == target_id,
                )
            )
            if removed.rowcount:
                await self.db.execute(
                    update(User)
                    .where(User.id == actor_id)
                    .values(following_count=_decrement(User.following_count))
                    .execution_options(synchronize_session=False)
                )
                await self.db.execute(
                    update(User)
                    .where(User.id == target_id)
                    .values(follower_count=_decrement(User.follower_count))
                    .execution_options(synchronize_session=False)
                )
            await self.db.commit()
            FOLLOW_EVENTS_TOTAL.labels(action="unfollow").inc()
            logger.info("%s unfollowed %s", actor_id, target_id)

            await self.db.refresh(actor)
            await self.db.refresh(target)
            result = FollowResult(
                is_following=False,
                is_follow_back=False,
                follower_count=target.follower_count,
                following_count=actor.following_count,
            )

            await self.notifier.retract(target_id, actor_id, NotificationType.FOLLOW)
            return result

    async def list_followers(
        self, user_id: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        user = await store.get_active_user(self.db, user_id)
        stmt = (
            select(User)
            .join(Follow, Follow.follower_id == User.id)
            .where(Follow.followee_id == user.id, User.is_active.is_(True))
            .order_by(Follow.created_at.desc())
        )
        return await self._with_follow_flags(stmt, page, limit, viewer)

    async def list_following(
        self, user_id: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        user = await store.get_active_user(self.db, user_id)
        stmt = (
            select(User)
            .join(Follow, Follow.followee_id == User.id)
            .where(Follow.follower_id == user.id, User.is_active.is_(True))
            .order_by(Follow.created_at.desc())
        )
        own_list = viewer is not None and viewer.id == user.id
        return await self._with_follow_flags(stmt, page, limit, viewer, all_followed=own_list)

    async def _with_follow_flags(
        self, stmt, page: int, limit: int, viewer: Optional[User], all_followed: bool = False
    ) -> Page:
        result = await store.paginate(self.db, stmt, page, limit)
        if viewer is None:
            followed: set[str] = set()
        elif all_followed:
            followed = {u.id for u in result.items}
        else:
            followed = await store.following_among(self.db, viewer.id, (u.id for u in result.items))
        result.items = [UserEntry(user=u, is_following=u.id in followed) for u in result.items]
        return result
