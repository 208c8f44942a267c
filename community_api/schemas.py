"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Every response is wrapped in ``Envelope``: ``{success, message?, data?, errors?}``.
JSON field names are camelCase; Python attribute names stay snake_case.
"""
import re
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from community_api.store import Page

T = TypeVar("T")

USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,20}$"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    errors: Optional[list[dict[str, Any]]] = None


class Pagination(ApiModel):
    current_page: int
    total_pages: int
    total: int
    has_more: bool
    has_next: bool
    has_prev: bool

    @classmethod
    def of(cls, page: Page) -> "Pagination":
        return cls(
            current_page=page.page,
            total_pages=page.total_pages,
            total=page.total,
            has_more=page.has_more,
            has_next=page.has_more,
            has_prev=page.page > 1,
        )


# ──────────────────────────── Auth ────────────────────────────────────────

class RegisterRequest(ApiModel):
    username: str = Field(..., pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
            raise ValueError(
                "Password must contain at least one lowercase letter, one uppercase letter, and one number"
            )
        return value


class LoginRequest(ApiModel):
    email_or_username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPairOut(ApiModel):
    access_token: str
    refresh_token: str


# ──────────────────────────── Users ───────────────────────────────────────

class UserSummary(ApiModel):
    id: str
    username: str
    profile_picture: Optional[str] = None
    bio: str = ""
    follower_count: int = 0
    following_count: int = 0
    is_following: Optional[bool] = None


class UserProfile(UserSummary):
    created_at: datetime


class Account(UserProfile):
    """The caller's own record; the only view that exposes the email."""
    email: str


class AuthData(ApiModel):
    user: Account
    access_token: str
    refresh_token: str


class UserData(ApiModel):
    user: UserProfile


class AccountData(ApiModel):
    user: Account


class ProfilePictureData(ApiModel):
    profile_picture: Optional[str]


class UserList(ApiModel):
    users: list[UserSummary]
    pagination: Pagination


class ProfileUpdate(ApiModel):
    username: Optional[str] = Field(None, pattern=USERNAME_PATTERN)
    bio: Optional[str] = Field(None, max_length=150)


class FollowOut(ApiModel):
    is_following: bool
    is_follow_back: bool
    follower_count: int
    following_count: int


# ──────────────────────────── Posts ───────────────────────────────────────

class PostOut(ApiModel):
    id: str
    user: UserSummary
    image_url: Optional[str]   # pre-signed MinIO URL
    caption: str
    like_count: int
    comment_count: int
    is_liked_by_user: Optional[bool] = None
    created_at: datetime


class PostData(ApiModel):
    post: PostOut


class PostList(ApiModel):
    posts: list[PostOut]
    pagination: Pagination


# ──────────────────────────── Comments ────────────────────────────────────

class CommentCreate(ApiModel):
    text: str = Field(..., min_length=1, max_length=500)
    parent_comment_id: Optional[str] = None

    @field_validator("text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment must be between 1 and 500 characters")
        return value


class CommentOut(ApiModel):
    id: str
    post_id: str
    user: UserSummary
    text: str
    parent_comment_id: Optional[str] = None
    like_count: int
    is_liked_by_user: Optional[bool] = None
    replies: list["CommentOut"] = []
    reply_count: int = 0
    created_at: datetime


class CommentData(ApiModel):
    comment: CommentOut


class CommentList(ApiModel):
    comments: list[CommentOut]
    pagination: Pagination


class ReplyList(ApiModel):
    replies: list[CommentOut]
    pagination: Pagination


class PostDetail(ApiModel):
    post: PostOut
    comments: list[CommentOut]
    pagination: Pagination


# ──────────────────────────── Likes ───────────────────────────────────────

class LikeToggleOut(ApiModel):
    is_liked: bool
    like_count: int


class LikeOut(ApiModel):
    user: UserSummary
    created_at: datetime


class LikeList(ApiModel):
    likes: list[LikeOut]
    total_likes: int
    pagination: Pagination


# ──────────────────────────── Notifications ───────────────────────────────

class NotificationOut(ApiModel):
    id: str
    sender: Optional[UserSummary]
    type: str
    message: str
    related_post_id: Optional[str] = None
    related_comment_id: Optional[str] = None
    is_read: bool
    is_email_sent: bool
    created_at: datetime


class NotificationList(ApiModel):
    notifications: list[NotificationOut]
    unread_count: int
    pagination: Pagination


class UnreadCount(ApiModel):
    unread_count: int


class MarkedRead(ApiModel):
    updated: int
