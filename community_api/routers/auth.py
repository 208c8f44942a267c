"""
Authentication endpoints:
  POST /auth/register      — create an account, returns a token pair
  POST /auth/login         — email or username + password
  POST /auth/refresh-token — rotate the token pair
  POST /auth/logout        — invalidate the stored refresh token
  GET  /auth/profile       — the caller's own account
"""
from fastapi import APIRouter, Depends, status

from community_api import presenters
from community_api.clients.media_store import MediaStore
from community_api.dependencies import CurrentUser, get_auth_service, get_media_store
from community_api.schemas import (
    AccountData,
    AuthData,
    Envelope,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPairOut,
)
from community_api.services.auth import AuthService

router = APIRouter()


@router.post("/register", response_model=Envelope[AuthData], status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
    media: MediaStore = Depends(get_media_store),
):
    user, tokens = await auth.register(body.username, body.email, body.password)
    return Envelope(
        message="User registered successfully",
        data=AuthData(
            user=presenters.account(user, media),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        ),
    )


@router.post("/login", response_model=Envelope[AuthData])
async def login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    media: MediaStore = Depends(get_media_store),
):
    user, tokens = await auth.login(body.email_or_username, body.password)
    return Envelope(
        message="Login successful",
        data=AuthData(
            user=presenters.account(user, media),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        ),
    )


@router.post("/refresh-token", response_model=Envelope[TokenPairOut])
async def refresh_token(body: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    tokens = await auth.refresh(body.refresh_token)
    return Envelope(data=TokenPairOut(**tokens._asdict()))


@router.post("/logout", response_model=Envelope[None])
async def logout(user: CurrentUser, auth: AuthService = Depends(get_auth_service)):
    await auth.logout(user)
    return Envelope(message="Logged out successfully")


@router.get("/profile", response_model=Envelope[AccountData])
async def profile(user: CurrentUser, media: MediaStore = Depends(get_media_store)):
    return Envelope(data=AccountData(user=presenters.account(user, media)))
