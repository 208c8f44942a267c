"""
Notification inbox endpoints (all scoped to the caller as recipient):
  GET    /notifications               — newest first, with unreadCount
  GET    /notifications/unread-count
  PATCH  /notifications/mark-all-read
  PATCH  /notifications/{id}/read
  DELETE /notifications/{id}
"""
from fastapi import APIRouter, Depends

from community_api import presenters
from community_api.clients.media_store import MediaStore
from community_api.dependencies import (
    CurrentUser,
    EntityId,
    Paging,
    get_media_store,
    get_notification_service,
)
from community_api.schemas import Envelope, MarkedRead, NotificationList, Pagination, UnreadCount
from community_api.services.notifications import NotificationService

router = APIRouter()


@router.get("", response_model=Envelope[NotificationList])
async def list_notifications(
    user: CurrentUser,
    paging: Paging,
    inbox: NotificationService = Depends(get_notification_service),
    media: MediaStore = Depends(get_media_store),
):
    page, unread = await inbox.list_for(user, paging.page, paging.limit)
    return Envelope(
        data=NotificationList(
            notifications=[presenters.notification_out(n, media) for n in page.items],
            unread_count=unread,
            pagination=Pagination.of(page),
        )
    )


@router.get("/unread-count", response_model=Envelope[UnreadCount])
async def unread_count(user: CurrentUser, inbox: NotificationService = Depends(get_notification_service)):
    return Envelope(data=UnreadCount(unread_count=await inbox.unread_count(user)))


@router.patch("/mark-all-read", response_model=Envelope[MarkedRead])
async def mark_all_read(user: CurrentUser, inbox: NotificationService = Depends(get_notification_service)):
    updated = await inbox.mark_all_read(user)
    return Envelope(message="All notifications marked as read", data=MarkedRead(updated=updated))


@router.patch("/{notification_id}/read", response_model=Envelope[None])
async def mark_read(
    notification_id: EntityId,
    user: CurrentUser,
    inbox: NotificationService = Depends(get_notification_service),
):
    await inbox.mark_read(user, notification_id)
    return Envelope(message="Notification marked as read")


@router.delete("/{notification_id}", response_model=Envelope[None])
async def delete_notification(
    notification_id: EntityId,
    user: CurrentUser,
    inbox: NotificationService = Depends(get_notification_service),
):
    await inbox.delete(user, notification_id)
    return Envelope(message="Notification deleted successfully")
