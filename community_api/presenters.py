"""
ORM row → response schema builders.

Object keys are turned into pre-signed MinIO URLs here, at the edge, so the
services never deal with URLs.
"""
from typing import Optional

from community_api.clients.media_store import MediaStore
from community_api.models import Notification, Post, PostLike, User
from community_api.schemas import (
    Account,
    CommentOut,
    LikeOut,
    NotificationOut,
    PostOut,
    UserProfile,
    UserSummary,
)
from community_api.services.content import CommentEntry


def user_summary(user: User, media: MediaStore, is_following: Optional[bool] = None) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        profile_picture=media.url_for(user.profile_picture_key),
        bio=user.bio or "",
        follower_count=user.follower_count,
        following_count=user.following_count,
        is_following=is_following,
    )


def user_profile(user: User, media: MediaStore, is_following: Optional[bool] = None) -> UserProfile:
    return UserProfile(
        **user_summary(user, media, is_following).model_dump(),
        created_at=user.created_at,
    )


def account(user: User, media: MediaStore) -> Account:
    return Account(**user_profile(user, media).model_dump(), email=user.email)


def post_out(post: Post, media: MediaStore, is_liked: Optional[bool] = None) -> PostOut:
    return PostOut(
        id=post.id,
        user=user_summary(post.author, media),
        image_url=media.url_for(post.image_key),
        caption=post.caption,
        like_count=post.like_count,
        comment_count=post.comment_count,
        is_liked_by_user=is_liked,
        created_at=post.created_at,
    )


def comment_out(entry: CommentEntry, media: MediaStore, with_viewer: bool = False) -> CommentOut:
    comment = entry.comment
    return CommentOut(
        id=comment.id,
        post_id=comment.post_id,
        user=user_summary(comment.author, media),
        text=comment.text,
        parent_comment_id=comment.parent_id,
        like_count=comment.like_count,
        is_liked_by_user=entry.is_liked if with_viewer else None,
        replies=[comment_out(reply, media, with_viewer) for reply in entry.replies],
        reply_count=entry.reply_count,
        created_at=comment.created_at,
    )


def like_out(like: PostLike, media: MediaStore) -> LikeOut:
    return LikeOut(user=user_summary(like.user, media), created_at=like.created_at)


def notification_out(notification: Notification, media: MediaStore) -> NotificationOut:
    sender = notification.sender
    return NotificationOut(
        id=notification.id,
        sender=user_summary(sender, media) if sender is not None else None,
        type=notification.type,
        message=notification.message,
        related_post_id=notification.related_post_id,
        related_comment_id=notification.related_comment_id,
        is_read=notification.is_read,
        is_email_sent=notification.is_email_sent,
        created_at=notification.created_at,
    )
