"""
Like / unlike toggling for posts and comments.

A like is a row keyed by (target id, user id). The toggle is an atomic
remove-if-present / add-if-absent on that key: the DELETE either removes
the caller's row or reports zero rows, and the INSERT is guarded by the
primary key, so two concurrent toggles by the same user can never leave a
duplicate like behind. The denormalised ``like_count`` is then rewritten
from a fresh COUNT of the like rows in the same transaction.
"""
import logging
from dataclasses import dataclass
from typing import Union

from opentelemetry import trace
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from community_api import store
from community_api.models import Comment, CommentLike, NotificationType, Post, PostLike, User
from community_api.services.notifications import NotificationFanout
from community_api.store import Page
from community_api.telemetry import LIKE_TOGGLES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class LikeToggleResult:
    is_liked: bool
    like_count: int


class EngagementService:
    def __init__(self, db: AsyncSession, notifier: NotificationFanout) -> None:
        self.db = db
        self.notifier = notifier

    async def _toggle(
        self,
        like_model: Union[type[PostLike], type[CommentLike]],
        target: Union[Post, Comment],
        user_id: str,
    ) -> bool:
        """
        Flip the like row for (target, user) and refresh the counter. Returns
        the new state. Callers must not read other ORM objects loaded in this
        session afterwards without refreshing them: the duplicate-insert path
        rolls the session back.
        """
        target_id = target.id
        target_col = like_model.post_id if like_model is PostLike else like_model.comment_id

        removed = await self.db.execute(
            delete(like_model).where(target_col == target_id, like_model.user_id == user_id)
        )
        if removed.rowcount:
            is_liked = False
        else:
            is_liked = True
            self.db.add(like_model(**{target_col.key: target_id, "user_id": user_id}))
            try:
                await self.db.flush()
            except IntegrityError:
                # A concurrent toggle by the same user inserted first; nothing
                # else was written in this transaction, so the row it left is
                # the state we wanted.
                await self.db.rollback()

        like_count = (
            select(func.count())
            .select_from(like_model)
            .where(target_col == target_id)
            .scalar_subquery()
        )
        await self.db.execute(
            update(type(target))
            .where(type(target).id == target_id)
            .values(like_count=like_count)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(target)
        return is_liked

    async def toggle_post_like(self, actor: User, post_id: str) -> LikeToggleResult:
        with tracer.start_as_current_span("toggle_post_like") as span:
            span.set_attribute("post.id", post_id)
            actor_id, actor_name = actor.id, actor.username

            post = await store.get_active_post(self.db, post_id)
            owner = await store.get_user(self.db, post.user_id)
            owner_id, owner_email = owner.id, owner.email
            is_liked = await self._toggle(PostLike, post, actor_id)
            result = LikeToggleResult(is_liked=is_liked, like_count=post.like_count)
            LIKE_TOGGLES_TOTAL.labels(
                target="post", state="liked" if is_liked else "unliked"
            ).inc()

            if is_liked:
                if owner_id != actor_id:
                    notification = await self.notifier.notify(
                        owner_id,
                        actor_id,
                        NotificationType.LIKE,
                        f"{actor_name} liked your post",
                        related_post_id=post_id,
                    )
                    await self.notifier.notify_by_email(
                        notification, owner_email, NotificationType.LIKE, {"senderName": actor_name}
                    )
            else:
                await self.notifier.retract(
                    owner_id, actor_id, NotificationType.LIKE, related_post_id=post_id
                )
            return result

    async def toggle_comment_like(self, actor: User, comment_id: str) -> LikeToggleResult:
        with tracer.start_as_current_span("toggle_comment_like") as span:
            span.set_attribute("comment.id", comment_id)
            actor_id = actor.id

            comment = await store.get_active_comment(self.db, comment_id)
            owner_id = comment.user_id
            is_liked = await self._toggle(CommentLike, comment, actor_id)
            result = LikeToggleResult(is_liked=is_liked, like_count=comment.like_count)
            LIKE_TOGGLES_TOTAL.labels(
                target="comment", state="liked" if is_liked else "unliked"
            ).inc()

            if not is_liked:
                await self.notifier.retract(
                    owner_id, actor_id, NotificationType.LIKE, related_comment_id=comment_id
                )
            return result

    async def list_post_likes(self, post_id: str, page: int, limit: int) -> Page:
        """Likers of an active post, most recent like first."""
        post = await store.get_active_post(self.db, post_id)
        stmt = (
            select(PostLike)
            .where(PostLike.post_id == post.id)
            .order_by(PostLike.created_at.desc())
        )
        return await store.paginate(self.db, stmt, page, limit)
