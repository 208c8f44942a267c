"""
Like endpoints:
  POST /likes/post/{id}    — toggle the caller's like on a post
  POST /likes/comment/{id} — toggle the caller's like on a comment
  GET  /likes/post/{id}    — who liked a post
"""
from fastapi import APIRouter, Depends

from community_api.clients.media_store import MediaStore
from community_api.dependencies import CurrentUser, EntityId, Paging, get_engagement, get_media_store
from community_api.routers.posts import like_list
from community_api.schemas import Envelope, LikeList, LikeToggleOut
from community_api.services.engagement import EngagementService

router = APIRouter()


@router.post("/post/{post_id}", response_model=Envelope[LikeToggleOut])
async def toggle_post_like(
    post_id: EntityId,
    user: CurrentUser,
    engagement: EngagementService = Depends(get_engagement),
):
    result = await engagement.toggle_post_like(user, post_id)
    return Envelope(
        message="Post liked" if result.is_liked else "Post unliked",
        data=LikeToggleOut(is_liked=result.is_liked, like_count=result.like_count),
    )


@router.post("/comment/{comment_id}", response_model=Envelope[LikeToggleOut])
async def toggle_comment_like(
    comment_id: EntityId,
    user: CurrentUser,
    engagement: EngagementService = Depends(get_engagement),
):
    result = await engagement.toggle_comment_like(user, comment_id)
    return Envelope(
        message="Comment liked" if result.is_liked else "Comment unliked",
        data=LikeToggleOut(is_liked=result.is_liked, like_count=result.like_count),
    )


@router.get("/post/{post_id}", response_model=Envelope[LikeList])
async def get_post_likes(
    post_id: EntityId,
    paging: Paging,
    engagement: EngagementService = Depends(get_engagement),
    media: MediaStore = Depends(get_media_store),
):
    page = await engagement.list_post_likes(post_id, paging.page, paging.limit)
    return Envelope(data=like_list(page, media))
