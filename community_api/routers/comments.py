"""
Comment endpoints:
  POST   /comments/post/{id}    — comment on a post, or reply with parentCommentId
  GET    /comments/post/{id}    — top-level comments with reply previews
  GET    /comments/{id}/replies — all replies to a comment, oldest first
  DELETE /comments/{id}         — soft-delete a comment and its replies
"""
from fastapi import APIRouter, Depends, status

from community_api import presenters
from community_api.clients.media_store import MediaStore
from community_api.dependencies import (
    CurrentUser,
    EntityId,
    OptionalUser,
    Paging,
    get_content_service,
    get_media_store,
)
from community_api.routers.posts import comment_list
from community_api.schemas import (
    CommentCreate,
    CommentData,
    CommentList,
    Envelope,
    Pagination,
    ReplyList,
)
from community_api.services.content import ContentService

router = APIRouter()


@router.post("/post/{post_id}", response_model=Envelope[CommentData], status_code=status.HTTP_201_CREATED)
async def create_comment(
    post_id: EntityId,
    body: CommentCreate,
    user: CurrentUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    entry = await content.create_comment(user, post_id, body.text, body.parent_comment_id)
    return Envelope(
        message="Reply created successfully" if body.parent_comment_id else "Comment created successfully",
        data=CommentData(comment=presenters.comment_out(entry, media, True)),
    )


@router.get("/post/{post_id}", response_model=Envelope[CommentList])
async def get_post_comments(
    post_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.list_post_comments(post_id, paging.page, paging.limit, viewer)
    return Envelope(data=comment_list(page, media, viewer is not None))


@router.get("/{comment_id}/replies", response_model=Envelope[ReplyList])
async def get_comment_replies(
    comment_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.list_comment_replies(comment_id, paging.page, paging.limit, viewer)
    return Envelope(
        data=ReplyList(
            replies=[presenters.comment_out(e, media, viewer is not None) for e in page.items],
            pagination=Pagination.of(page),
        )
    )


@router.delete("/{comment_id}", response_model=Envelope[None])
async def delete_comment(
    comment_id: EntityId,
    user: CurrentUser,
    content: ContentService = Depends(get_content_service),
):
    await content.delete_comment(user, comment_id)
    return Envelope(message="Comment deleted successfully")
