"""
Post and comment lifecycle: publish, read, and cascading soft deletes.

Post ingestion path:
  1. Validate caption and image before anything is written.
  2. Upload the normalised image to MinIO (failure fails the request).
  3. Persist the post row.

Comment counts are recomputed from a COUNT of active comments after every
insert or delete rather than incremented, so earlier drift heals itself.
Reads filter on both the post's and the comment's own ``is_active`` flag.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from opentelemetry import trace
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from community_api import store
from community_api.clients.media_store import POSTS_FOLDER, MediaStore
from community_api.errors import ForbiddenError, NotFoundError, ValidationError
from community_api.models import Comment, Follow, Notification, NotificationType, Post, User
from community_api.services.notifications import NotificationFanout
from community_api.store import Page
from community_api.telemetry import POSTS_CREATED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_CAPTION_LENGTH = 2200
MAX_COMMENT_LENGTH = 500
REPLY_PREVIEW_SIZE = 3


@dataclass
class PostEntry:
    post: Post
    is_liked: bool = False


@dataclass
class CommentEntry:
    comment: Comment
    is_liked: bool = False
    replies: list["CommentEntry"] = field(default_factory=list)
    reply_count: int = 0


class ContentService:
    def __init__(self, db: AsyncSession, notifier: NotificationFanout, media: MediaStore) -> None:
        self.db = db
        self.notifier = notifier
        self.media = media

    # ───────────────────────────── Posts ──────────────────────────────────

    async def create_post(self, actor: User, image: Optional[bytes], caption: str = "") -> Post:
        with tracer.start_as_current_span("create_post") as span:
            caption = (caption or "").strip()
            if len(caption) > MAX_CAPTION_LENGTH:
                raise ValidationError(
                    errors=[{"field": "caption", "message": "Caption cannot exceed 2200 characters"}]
                )
            if not image:
                raise ValidationError("Image is required")

            image_key = self.media.upload_image(image, POSTS_FOLDER)

            post = Post(user_id=actor.id, image_key=image_key, caption=caption)
            self.db.add(post)
            await self.db.commit()
            await self.db.refresh(post)

            span.set_attribute("post.id", post.id)
            span.set_attribute("post.user_id", post.user_id)
            POSTS_CREATED_TOTAL.inc()
            logger.info("Post created: %s by user %s", post.id, post.user_id)
            return post

    async def list_posts(self, page: int, limit: int, viewer: Optional[User] = None) -> Page:
        stmt = select(Post).where(Post.is_active.is_(True)).order_by(Post.created_at.desc())
        return await self._post_page(stmt, page, limit, viewer)

    async def list_user_posts(
        self, user_id: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        user = await store.get_active_user(self.db, user_id)
        stmt = (
            select(Post)
            .where(Post.user_id == user.id, Post.is_active.is_(True))
            .order_by(Post.created_at.desc())
        )
        return await self._post_page(stmt, page, limit, viewer)

    async def following_feed(self, viewer: User, page: int, limit: int) -> Page:
        """Posts by the users ``viewer`` follows, newest first."""
        followed = select(Follow.followee_id).where(Follow.follower_id == viewer.id)
        stmt = (
            select(Post)
            .where(Post.user_id.in_(followed), Post.is_active.is_(True))
            .order_by(Post.created_at.desc())
        )
        return await self._post_page(stmt, page, limit, viewer)

    async def get_post(self, post_id: str, viewer: Optional[User] = None) -> PostEntry:
        post = await store.get_active_post(self.db, post_id)
        liked = (
            await store.liked_post_ids(self.db, viewer.id, [post.id]) if viewer else set()
        )
        return PostEntry(post=post, is_liked=post.id in liked)

    async def _post_page(self, stmt, page: int, limit: int, viewer: Optional[User]) -> Page:
        result = await store.paginate(self.db, stmt, page, limit)
        liked = (
            await store.liked_post_ids(self.db, viewer.id, (p.id for p in result.items))
            if viewer
            else set()
        )
        result.items = [PostEntry(post=p, is_liked=p.id in liked) for p in result.items]
        return result

    async def delete_post(self, actor: User, post_id: str) -> None:
        with tracer.start_as_current_span("delete_post") as span:
            span.set_attribute("post.id", post_id)
            post = await store.get_active_post(self.db, post_id)
            if post.user_id != actor.id:
                raise ForbiddenError("You are not authorized to delete this post")

            # Order matters: image first, then the post, then everything hanging off it.
            self.media.delete_object(post.image_key)

            post.is_active = False
            await self.db.execute(
                update(Comment)
                .where(Comment.post_id == post_id)
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Notification).where(Notification.related_post_id == post_id)
            )
            await self.db.commit()
            logger.info("Post %s deleted by %s", post_id, actor.id)

    # ───────────────────────────── Comments ───────────────────────────────

    async def create_comment(
        self,
        actor: User,
        post_id: str,
        text: str,
        parent_comment_id: Optional[str] = None,
    ) -> CommentEntry:
        with tracer.start_as_current_span("create_comment") as span:
            span.set_attribute("post.id", post_id)
            actor_id, actor_name = actor.id, actor.username

            text = (text or "").strip()
            if not text or len(text) > MAX_COMMENT_LENGTH:
                raise ValidationError(
                    errors=[{"field": "text", "message": "Comment must be between 1 and 500 characters"}]
                )

            post = await store.get_active_post(self.db, post_id)
            owner = await store.get_user(self.db, post.user_id)
            post_owner_id, post_owner_email = owner.id, owner.email

            parent: Optional[Comment] = None
            if parent_comment_id:
                parent = await self.db.get(Comment, parent_comment_id)
                if parent is None or not parent.is_active or parent.post_id != post_id:
                    raise NotFoundError("Parent comment not found")
                if parent.parent_id is not None:
                    raise ValidationError(
                        errors=[{"field": "parentCommentId", "message": "Replies cannot be nested"}]
                    )

            comment = Comment(
                post_id=post_id,
                user_id=actor_id,
                text=text,
                parent_id=parent.id if parent else None,
            )
            self.db.add(comment)
            await self.db.flush()

            await self._refresh_comment_count(post_id)
            await self.db.commit()
            await self.db.refresh(comment)
            span.set_attribute("comment.id", comment.id)
            logger.info("Comment %s created on post %s by %s", comment.id, post_id, actor_id)

            if parent is not None:
                owner_message = f"{actor_name} replied to your comment"
            else:
                owner_message = f"{actor_name} commented on your post"
            notification = await self.notifier.notify(
                post_owner_id,
                actor_id,
                NotificationType.COMMENT,
                owner_message,
                related_post_id=post_id,
                related_comment_id=comment.id,
            )
            await self.notifier.notify_by_email(
                notification,
                post_owner_email,
                NotificationType.COMMENT,
                {"senderName": actor_name, "commentText": text},
            )

            if parent is not None and parent.user_id not in (actor_id, post_owner_id):
                await self.notifier.notify(
                    parent.user_id,
                    actor_id,
                    NotificationType.COMMENT,
                    f"{actor_name} replied to your comment",
                    related_post_id=post_id,
                    related_comment_id=comment.id,
                )

            return CommentEntry(comment=comment)

    async def list_post_comments(
        self, post_id: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        """
        Top-level comments of a post, newest first, each with a preview of its
        earliest replies. A soft-deleted post has no visible comments.
        """
        post = await store.get_post(self.db, post_id)
        if post is None:
            raise NotFoundError("Post not found")

        stmt = (
            select(Comment)
            .join(Post, Post.id == Comment.post_id)
            .where(
                Comment.post_id == post_id,
                Comment.parent_id.is_(None),
                Comment.is_active.is_(True),
                Post.is_active.is_(True),
            )
            .order_by(Comment.created_at.desc())
        )
        result = await store.paginate(self.db, stmt, page, limit)

        previews, counts = await self._reply_previews([c.id for c in result.items])
        entries = [
            CommentEntry(
                comment=comment,
                replies=[CommentEntry(comment=r) for r in previews.get(comment.id, [])],
                reply_count=counts.get(comment.id, 0),
            )
            for comment in result.items
        ]
        await self._mark_liked(entries, viewer)
        result.items = entries
        return result

    async def list_comment_replies(
        self, comment_id: str, page: int, limit: int, viewer: Optional[User] = None
    ) -> Page:
        """Active replies to a comment, oldest first."""
        parent = await store.get_active_comment(self.db, comment_id)
        result = await self._active_replies(parent.id, page, limit)
        entries = [CommentEntry(comment=r) for r in result.items]
        await self._mark_liked(entries, viewer)
        result.items = entries
        return result

    async def delete_comment(self, actor: User, comment_id: str) -> None:
        with tracer.start_as_current_span("delete_comment") as span:
            span.set_attribute("comment.id", comment_id)
            comment = await store.get_active_comment(self.db, comment_id)
            if comment.user_id != actor.id:
                raise ForbiddenError("You are not authorized to delete this comment")
            post_id = comment.post_id

            await self.db.execute(
                update(Comment)
                .where(or_(Comment.id == comment_id, Comment.parent_id == comment_id))
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            await self._refresh_comment_count(post_id)
            await self.db.execute(
                delete(Notification).where(
                    or_(
                        Notification.related_comment_id == comment_id,
                        Notification.related_comment_id.in_(
                            select(Comment.id).where(Comment.parent_id == comment_id)
                        ),
                    )
                )
            )
            await self.db.commit()
            await self.db.refresh(comment)
            logger.info("Comment %s deleted by %s", comment_id, actor.id)

    async def _refresh_comment_count(self, post_id: str) -> None:
        active = (
            select(func.count())
            .select_from(Comment)
            .where(Comment.post_id == post_id, Comment.is_active.is_(True))
            .scalar_subquery()
        )
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(comment_count=active)
            .execution_options(synchronize_session=False)
        )

    async def _active_replies(self, comment_id: str, page: int, limit: int) -> Page:
        stmt = (
            select(Comment)
            .where(Comment.parent_id == comment_id, Comment.is_active.is_(True))
            .order_by(Comment.created_at.asc())
        )
        return await store.paginate(self.db, stmt, page, limit)

    async def _reply_previews(
        self, parent_ids: list[str]
    ) -> tuple[dict[str, list[Comment]], dict[str, int]]:
        """
        The earliest REPLY_PREVIEW_SIZE active replies and the active reply
        count for each parent, in two queries for the whole page.
        """
        if not parent_ids:
            return {}, {}
        active_replies = (Comment.parent_id.in_(parent_ids), Comment.is_active.is_(True))

        counted = await self.db.execute(
            select(Comment.parent_id, func.count()).where(*active_replies).group_by(Comment.parent_id)
        )
        counts = {parent_id: total for parent_id, total in counted.all()}

        position = (
            func.row_number()
            .over(partition_by=Comment.parent_id, order_by=(Comment.created_at.asc(), Comment.id))
            .label("position")
        )
        ranked = select(Comment.id, position).where(*active_replies).subquery()
        rows = await self.db.execute(
            select(Comment)
            .join(ranked, ranked.c.id == Comment.id)
            .where(ranked.c.position <= REPLY_PREVIEW_SIZE)
            .order_by(Comment.parent_id, Comment.created_at.asc())
        )
        previews: dict[str, list[Comment]] = defaultdict(list)
        for reply in rows.scalars():
            previews[reply.parent_id].append(reply)
        return previews, counts

    async def _mark_liked(self, entries: list[CommentEntry], viewer: Optional[User]) -> None:
        if viewer is None:
            return
        everything = [e for entry in entries for e in (entry, *entry.replies)]
        liked = await store.liked_comment_ids(self.db, viewer.id, (e.comment.id for e in everything))
        for e in everything:
            e.is_liked = e.comment.id in liked
