"""Registration, login and refresh-token rotation."""
import hmac
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from community_api import store
from community_api.config import Settings
from community_api.errors import AuthError, ConflictError
from community_api.models import User
from community_api.security import (
    TokenPair,
    digest_token,
    generate_tokens,
    hash_password,
    verify_password,
    verify_refresh_token,
)

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings

    async def register(self, username: str, email: str, password: str) -> tuple[User, TokenPair]:
        email = email.strip().lower()
        result = await self.db.execute(
            select(User.email, User.username).where(
                or_(User.email == email, User.username == username)
            )
        )
        existing = result.all()
        if any(row.email == email for row in existing):
            raise ConflictError("Email already registered")
        if existing:
            raise ConflictError("Username already taken")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password, self.settings),
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError("Email or username already registered") from exc

        tokens = await self._issue(user)
        logger.info("User registered: %s", user.id)
        return user, tokens

    async def login(self, email_or_username: str, password: str) -> tuple[User, TokenPair]:
        user = await store.find_user_by_login(self.db, email_or_username)
        if user is None or not user.is_active:
            raise AuthError("Invalid credentials")
        if not verify_password(password, user.password_hash, self.settings):
            raise AuthError("Invalid credentials")

        tokens = await self._issue(user)
        logger.info("User logged in: %s", user.id)
        return user, tokens

    async def refresh(self, refresh_token: str) -> TokenPair:
        try:
            user_id = verify_refresh_token(refresh_token, self.settings)
        except AuthError as exc:
            raise AuthError("Invalid refresh token") from exc
        user = await store.get_user(self.db, user_id)
        if user is None or not user.is_active or not user.refresh_token_hash:
            raise AuthError("Invalid refresh token")
        if not hmac.compare_digest(user.refresh_token_hash, digest_token(refresh_token)):
            raise AuthError("Invalid refresh token")
        return await self._issue(user)

    async def logout(self, user: User) -> None:
        user.refresh_token_hash = None
        await self.db.commit()
        logger.info("User logged out: %s", user.id)

    async def _issue(self, user: User) -> TokenPair:
        tokens = generate_tokens(user.id, self.settings)
        user.refresh_token_hash = digest_token(tokens.refresh_token)
        await self.db.commit()
        await self.db.refresh(user)
        return tokens
