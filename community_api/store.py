"""
Entity store: thin read accessors shared by the services.

No business rules live here beyond the soft-delete filter: the
``get_active_*`` helpers treat a record with ``is_active = False`` exactly
like a missing one and raise NotFoundError.
"""
import math
from dataclasses import dataclass
from typing import Generic, Iterable, Optional, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_api.errors import NotFoundError
from community_api.models import Comment, CommentLike, Follow, Post, PostLike, User

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


async def paginate(db: AsyncSession, stmt: Select, page: int, limit: int) -> Page:
    """Run ``stmt`` with skip/limit and count the full result set."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar_one()
    rows = await db.execute(stmt.offset((page - 1) * limit).limit(limit))
    return Page(items=list(rows.scalars().all()), total=total, page=page, limit=limit)


# ─────────────────────────────── Users ────────────────────────────────────

async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def get_active_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")
    return user


async def find_user_by_login(db: AsyncSession, email_or_username: str) -> Optional[User]:
    value = email_or_username.strip()
    result = await db.execute(
        select(User).where(or_(User.email == value.lower(), User.username == value))
    )
    return result.scalars().first()


async def is_following(db: AsyncSession, follower_id: str, followee_id: str) -> bool:
    result = await db.execute(
        select(Follow.follower_id).where(
            Follow.follower_id == follower_id,
            Follow.followee_id == followee_id,
        )
    )
    return result.first() is not None


async def following_among(db: AsyncSession, follower_id: str, candidate_ids: Iterable[str]) -> set[str]:
    """The subset of ``candidate_ids`` that ``follower_id`` follows."""
    ids = list(candidate_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(Follow.followee_id).where(
            Follow.follower_id == follower_id,
            Follow.followee_id.in_(ids),
        )
    )
    return set(result.scalars().all())


# ─────────────────────────────── Posts ────────────────────────────────────

async def get_post(db: AsyncSession, post_id: str) -> Optional[Post]:
    return await db.get(Post, post_id)


async def get_active_post(db: AsyncSession, post_id: str) -> Post:
    post = await db.get(Post, post_id)
    if post is None or not post.is_active:
        raise NotFoundError("Post not found")
    return post


async def liked_post_ids(db: AsyncSession, user_id: str, post_ids: Iterable[str]) -> set[str]:
    ids = list(post_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(PostLike.post_id).where(
            PostLike.user_id == user_id,
            PostLike.post_id.in_(ids),
        )
    )
    return set(result.scalars().all())


# ─────────────────────────────── Comments ─────────────────────────────────

async def get_active_comment(db: AsyncSession, comment_id: str) -> Comment:
    comment = await db.get(Comment, comment_id)
    if comment is None or not comment.is_active:
        raise NotFoundError("Comment not found")
    return comment


async def liked_comment_ids(db: AsyncSession, user_id: str, comment_ids: Iterable[str]) -> set[str]:
    ids = list(comment_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(CommentLike.comment_id).where(
            CommentLike.user_id == user_id,
            CommentLike.comment_id.in_(ids),
        )
    )
    return set(result.scalars().all())
