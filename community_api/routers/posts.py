"""
Post endpoints:
  POST   /posts               — publish a post (multipart image + caption)
  GET    /posts               — newest active posts
  GET    /posts/{id}          — a post with its first page of comments
  DELETE /posts/{id}          — soft-delete a post and everything under it
  GET    /posts/{id}/comments — top-level comments with reply previews
  GET    /posts/{id}/likes    — who liked a post
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from community_api import presenters
from community_api.clients.media_store import MediaStore
from community_api.config import Settings
from community_api.dependencies import (
    CurrentUser,
    EntityId,
    OptionalUser,
    Paging,
    get_app_settings,
    get_content_service,
    get_engagement,
    get_media_store,
    read_image_upload,
)
from community_api.schemas import (
    CommentList,
    Envelope,
    LikeList,
    Pagination,
    PostData,
    PostDetail,
    PostList,
)
from community_api.services.content import ContentService
from community_api.services.engagement import EngagementService

router = APIRouter()


def post_list(page, media: MediaStore, with_viewer: bool) -> PostList:
    return PostList(
        posts=[
            presenters.post_out(e.post, media, e.is_liked if with_viewer else None)
            for e in page.items
        ],
        pagination=Pagination.of(page),
    )


def comment_list(page, media: MediaStore, with_viewer: bool) -> CommentList:
    return CommentList(
        comments=[presenters.comment_out(e, media, with_viewer) for e in page.items],
        pagination=Pagination.of(page),
    )


def like_list(page, media: MediaStore) -> LikeList:
    return LikeList(
        likes=[presenters.like_out(like, media) for like in page.items],
        total_likes=page.total,
        pagination=Pagination.of(page),
    )


@router.post("", response_model=Envelope[PostData], status_code=status.HTTP_201_CREATED)
async def create_post(
    user: CurrentUser,
    image: UploadFile = File(None),
    caption: str = Form(""),
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
    settings: Settings = Depends(get_app_settings),
):
    data = await read_image_upload(image, settings)
    post = await content.create_post(user, data, caption)
    return Envelope(
        message="Post created successfully",
        data=PostData(post=presenters.post_out(post, media, False)),
    )


@router.get("", response_model=Envelope[PostList])
async def list_posts(
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.list_posts(paging.page, paging.limit, viewer)
    return Envelope(data=post_list(page, media, viewer is not None))


@router.get("/{post_id}", response_model=Envelope[PostDetail])
async def get_post(
    post_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    with_viewer = viewer is not None
    entry = await content.get_post(post_id, viewer)
    comments = await content.list_post_comments(post_id, paging.page, paging.limit, viewer)
    return Envelope(
        data=PostDetail(
            post=presenters.post_out(entry.post, media, entry.is_liked if with_viewer else None),
            comments=[presenters.comment_out(e, media, with_viewer) for e in comments.items],
            pagination=Pagination.of(comments),
        )
    )


@router.delete("/{post_id}", response_model=Envelope[None])
async def delete_post(
    post_id: EntityId,
    user: CurrentUser,
    content: ContentService = Depends(get_content_service),
):
    await content.delete_post(user, post_id)
    return Envelope(message="Post deleted successfully")


@router.get("/{post_id}/comments", response_model=Envelope[CommentList])
async def get_post_comments(
    post_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.list_post_comments(post_id, paging.page, paging.limit, viewer)
    return Envelope(data=comment_list(page, media, viewer is not None))


@router.get("/{post_id}/likes", response_model=Envelope[LikeList])
async def get_post_likes(
    post_id: EntityId,
    paging: Paging,
    engagement: EngagementService = Depends(get_engagement),
    media: MediaStore = Depends(get_media_store),
):
    page = await engagement.list_post_likes(post_id, paging.page, paging.limit)
    return Envelope(data=like_list(page, media))
