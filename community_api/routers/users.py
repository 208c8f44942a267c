"""
User endpoints:
  GET    /users/search/{query}   — search by username, email or bio
  GET    /users/feed/following   — posts from the users the caller follows
  PUT    /users/profile          — edit username / bio
  POST   /users/profile/picture  — replace the avatar
  GET    /users/{id}             — a user's profile
  GET    /users/{id}/posts       — a user's posts
  GET    /users/{id}/followers
  GET    /users/{id}/following
  POST   /users/{id}/follow
  DELETE /users/{id}/follow

Static paths are registered before /{id} so they are never captured by it.
"""
from fastapi import APIRouter, Depends, File, UploadFile

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
    get_media_store,
    get_social_graph,
    get_user_service,
    read_image_upload,
)
from community_api.routers.posts import post_list
from community_api.schemas import (
    AccountData,
    Envelope,
    FollowOut,
    Pagination,
    PostList,
    ProfilePictureData,
    ProfileUpdate,
    UserData,
    UserList,
)
from community_api.services.content import ContentService
from community_api.services.social_graph import FollowResult, SocialGraphService
from community_api.services.users import UserService

router = APIRouter()


def _user_list(page, media: MediaStore, with_viewer: bool) -> UserList:
    return UserList(
        users=[
            presenters.user_summary(e.user, media, e.is_following if with_viewer else None)
            for e in page.items
        ],
        pagination=Pagination.of(page),
    )


def _follow_out(result: FollowResult) -> FollowOut:
    return FollowOut(
        is_following=result.is_following,
        is_follow_back=result.is_follow_back,
        follower_count=result.follower_count,
        following_count=result.following_count,
    )


@router.get("/search/{query}", response_model=Envelope[UserList])
async def search_users(
    query: str,
    paging: Paging,
    user: CurrentUser,
    users: UserService = Depends(get_user_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await users.search(query, paging.page, paging.limit, user)
    return Envelope(data=_user_list(page, media, True))


@router.get("/feed/following", response_model=Envelope[PostList])
async def following_feed(
    paging: Paging,
    user: CurrentUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.following_feed(user, paging.page, paging.limit)
    return Envelope(data=post_list(page, media, True))


@router.put("/profile", response_model=Envelope[AccountData])
async def update_profile(
    body: ProfileUpdate,
    user: CurrentUser,
    users: UserService = Depends(get_user_service),
    media: MediaStore = Depends(get_media_store),
):
    updated = await users.update_profile(user, username=body.username, bio=body.bio)
    return Envelope(
        message="Profile updated successfully",
        data=AccountData(user=presenters.account(updated, media)),
    )


@router.post("/profile/picture", response_model=Envelope[ProfilePictureData])
async def upload_profile_picture(
    user: CurrentUser,
    image: UploadFile = File(None),
    users: UserService = Depends(get_user_service),
    media: MediaStore = Depends(get_media_store),
    settings: Settings = Depends(get_app_settings),
):
    data = await read_image_upload(image, settings)
    updated = await users.upload_profile_picture(user, data)
    return Envelope(
        message="Profile picture updated successfully",
        data=ProfilePictureData(profile_picture=media.url_for(updated.profile_picture_key)),
    )


@router.get("/{user_id}", response_model=Envelope[UserData])
async def get_user(
    user_id: EntityId,
    viewer: OptionalUser,
    users: UserService = Depends(get_user_service),
    media: MediaStore = Depends(get_media_store),
):
    view = await users.get_profile(user_id, viewer)
    return Envelope(data=UserData(user=presenters.user_profile(view.user, media, view.is_following)))


@router.get("/{user_id}/posts", response_model=Envelope[PostList])
async def get_user_posts(
    user_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    content: ContentService = Depends(get_content_service),
    media: MediaStore = Depends(get_media_store),
):
    page = await content.list_user_posts(user_id, paging.page, paging.limit, viewer)
    return Envelope(data=post_list(page, media, viewer is not None))


@router.get("/{user_id}/followers", response_model=Envelope[UserList])
async def get_followers(
    user_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    graph: SocialGraphService = Depends(get_social_graph),
    media: MediaStore = Depends(get_media_store),
):
    page = await graph.list_followers(user_id, paging.page, paging.limit, viewer)
    return Envelope(data=_user_list(page, media, viewer is not None))


@router.get("/{user_id}/following", response_model=Envelope[UserList])
async def get_following(
    user_id: EntityId,
    paging: Paging,
    viewer: OptionalUser,
    graph: SocialGraphService = Depends(get_social_graph),
    media: MediaStore = Depends(get_media_store),
):
    page = await graph.list_following(user_id, paging.page, paging.limit, viewer)
    return Envelope(data=_user_list(page, media, viewer is not None))


@router.post("/{user_id}/follow", response_model=Envelope[FollowOut])
async def follow_user(
    user_id: EntityId,
    user: CurrentUser,
    graph: SocialGraphService = Depends(get_social_graph),
):
    result = await graph.follow_user(user, user_id)
    return Envelope(
        message="You are now following each other!" if result.is_follow_back else "User followed successfully",
        data=_follow_out(result),
    )


@router.delete("/{user_id}/follow", response_model=Envelope[FollowOut])
async def unfollow_user(
    user_id: EntityId,
    user: CurrentUser,
    graph: SocialGraphService = Depends(get_social_graph),
):
    result = await graph.unfollow_user(user, user_id)
    return Envelope(message="User unfollowed successfully", data=_follow_out(result))
