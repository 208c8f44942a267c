"""
Notification fan-out and the recipient-facing notification inbox.

Fan-out runs strictly after the primary action has committed and uses its
own short-lived sessions, so a failure here can never roll back or fail
the like/comment/follow that triggered it. Email delivery is one step
further removed: it is scheduled as a background task that runs after the
HTTP response has been sent, and flips ``is_email_sent`` only on success.
"""
import html
import logging
import re
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_api.clients.email_client import Mailer
from community_api.errors import ExternalServiceError, NotFoundError, UnknownTemplateError
from community_api.models import Notification, NotificationType, User
from community_api.store import Page, paginate
from community_api.telemetry import BEST_EFFORT_FAILURES_TOTAL, NOTIFICATIONS_CREATED_TOTAL

logger = logging.getLogger(__name__)

EMAIL_TEMPLATES = {
    NotificationType.LIKE: (
        "Someone liked your post!",
        "<h2>Good news!</h2>"
        "<p><strong>{senderName}</strong> liked your post.</p>"
        "<p>Check it out in the app!</p>",
    ),
    NotificationType.COMMENT: (
        "New comment on your post",
        "<h2>New Comment!</h2>"
        "<p><strong>{senderName}</strong> commented on your post:</p>"
        '<blockquote style="background: #f5f5f5; padding: 10px; border-left: 4px solid #007bff;">'
        '"{commentText}"'
        "</blockquote>"
        "<p>Reply in the app!</p>",
    ),
    NotificationType.FOLLOW: (
        "You have a new follower!",
        "<h2>New Follower!</h2>"
        "<p><strong>{senderName}</strong> started following you.</p>"
        "<p>Check out their profile in the app!</p>",
    ),
}

_TAG_RE = re.compile(r"<[^>]*>")


def render_email(type_: NotificationType, data: dict) -> tuple[str, str, str]:
    """Return (subject, html, text) for a notification email."""
    try:
        subject, body = EMAIL_TEMPLATES[NotificationType(type_)]
    except (KeyError, ValueError) as exc:
        raise UnknownTemplateError(f"No email template for '{type_}'") from exc

    escaped = {key: html.escape(str(value)) for key, value in data.items()}
    rendered = body.format_map(_Blank(escaped))
    text = " ".join(html.unescape(_TAG_RE.sub(" ", rendered)).split())
    return subject, rendered, text


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


class NotificationFanout:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mailer: Mailer,
        background: Optional[BackgroundTasks] = None,
    ) -> None:
        self.session_factory = session_factory
        self.mailer = mailer
        self.background = background

    async def notify(
        self,
        recipient_id: str,
        sender_id: str,
        type_: NotificationType,
        message: str,
        related_post_id: Optional[str] = None,
        related_comment_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """Insert one notification row. Never notifies a user about their own action."""
        if recipient_id == sender_id:
            return None

        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type_.value,
            message=message,
            related_post_id=related_post_id,
            related_comment_id=related_comment_id,
        )
        try:
            async with self.session_factory() as session:
                session.add(notification)
                await session.commit()
        except SQLAlchemyError as exc:
            BEST_EFFORT_FAILURES_TOTAL.labels(stage="notification").inc()
            logger.warning(
                "Failed to create %s notification for %s: %s", type_.value, recipient_id, exc
            )
            return None

        NOTIFICATIONS_CREATED_TOTAL.labels(type=type_.value).inc()
        return notification

    async def retract(
        self,
        recipient_id: str,
        sender_id: str,
        type_: NotificationType,
        related_post_id: Optional[str] = None,
        related_comment_id: Optional[str] = None,
    ) -> None:
        """Delete the notifications a now-undone action produced."""
        stmt = delete(Notification).where(
            Notification.recipient_id == recipient_id,
            Notification.sender_id == sender_id,
            Notification.type == type_.value,
        )
        if related_post_id is not None:
            stmt = stmt.where(Notification.related_post_id == related_post_id)
        if related_comment_id is not None:
            stmt = stmt.where(Notification.related_comment_id == related_comment_id)
        try:
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            BEST_EFFORT_FAILURES_TOTAL.labels(stage="retract").inc()
            logger.warning("Failed to remove %s notification: %s", type_.value, exc)

    async def notify_by_email(
        self,
        notification: Optional[Notification],
        recipient_email: str,
        type_: NotificationType,
        template_data: dict,
    ) -> None:
        """
        Render the email for ``type_`` and hand it to the mailer. Delivery
        runs as a background task when one is available, inline otherwise.
        """
        subject, body_html, body_text = render_email(type_, template_data)
        if notification is None:
            return
        if self.background is not None:
            self.background.add_task(
                self._deliver, notification.id, recipient_email, subject, body_html, body_text
            )
        else:
            await self._deliver(notification.id, recipient_email, subject, body_html, body_text)

    async def _deliver(self, notification_id: str, to: str, subject: str, body_html: str, body_text: str) -> None:
        try:
            await self.mailer.send(to, subject, body_html, body_text)
            async with self.session_factory() as session:
                await session.execute(
                    update(Notification)
                    .where(Notification.id == notification_id)
                    .values(is_email_sent=True)
                )
                await session.commit()
        except (ExternalServiceError, SQLAlchemyError) as exc:
            BEST_EFFORT_FAILURES_TOTAL.labels(stage="email").inc()
            logger.warning("Failed to send email notification %s: %s", notification_id, exc)


class NotificationService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for(self, recipient: User, page: int, limit: int) -> tuple[Page, int]:
        stmt = (
            select(Notification)
            .where(Notification.recipient_id == recipient.id)
            .order_by(Notification.created_at.desc())
        )
        result = await paginate(self.db, stmt, page, limit)
        return result, await self.unread_count(recipient)

    async def unread_count(self, recipient: User) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Notification).where(
                Notification.recipient_id == recipient.id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_read(self, recipient: User, notification_id: str) -> None:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.recipient_id == recipient.id,
            )
            .values(is_read=True)
        )
        if result.rowcount == 0:
            raise NotFoundError("Notification not found")
        await self.db.commit()

    async def mark_all_read(self, recipient: User) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient.id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await self.db.commit()
        return result.rowcount

    async def delete(self, recipient: User, notification_id: str) -> None:
        result = await self.db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == recipient.id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Notification not found")
        await self.db.commit()
