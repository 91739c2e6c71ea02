"""
Password authentication for directory users.

Unknown emails and wrong passwords fail identically, with the same error
and (through a dummy hash comparison) roughly the same cost, so callers
cannot tell which emails exist. The inactive-account message is only
returned after the password has been verified.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer

from app.core.errors import NotFoundError, UnauthorizedError, ValidationError
from app.features.users.models import User
from app.features.users.security import check_password_policy, dummy_hash, verify_password
from app.features.users.service import UserService, check_id
from app.utils import get_logger

log = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


async def _load_with_password(session: AsyncSession, *criteria) -> Optional[User]:
    result = await session.execute(select(User).options(undefer(User.password)).where(*criteria))
    return result.scalar_one_or_none()


async def _verify(password: str, hashed: str) -> bool:
    # bcrypt is deliberately slow; keep it off the event loop
    return await asyncio.to_thread(verify_password, password, hashed)


async def _dummy_hash() -> str:
    # the first call hashes; later calls return the cached value
    return await asyncio.to_thread(dummy_hash)


class AuthService:
    def __init__(self, users: UserService):
        self.users = users

    async def _check_credentials(self, session: AsyncSession, email: str, password: str) -> User:
        if not email or not password:
            raise ValidationError("credentials", "Email and password are required")

        user = await _load_with_password(session, User.email == email.strip().lower())
        if user is None:
            await _verify(password, await _dummy_hash())
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not await _verify(password, user.password):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not user.is_active:
            raise UnauthorizedError("Account is inactive. Please contact administrator.")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """
        Verify credentials and stamp ``last_login_at``.

        Raises:
            ValidationError: Email or password missing
            UnauthorizedError: Bad credentials or inactive account
        """
        async with self.users.transaction() as session:
            user = await self._check_credentials(session, email, password)
            user.last_login_at = datetime.now(timezone.utc)
            user_id = user.id

        log.info(f"User {user_id} authenticated")
        return await self.users.get_user(user_id)

    async def verify_credentials(self, email: str, password: str) -> User:
        """Same checks as ``authenticate`` without recording a login."""
        async with self.users.session() as session:
            user = await self._check_credentials(session, email, password)
            user_id = user.id
        return await self.users.get_user(user_id)

    async def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """
        Replace a password after verifying the current one.

        Raises:
            ValidationError: Missing input, weak new password, or new == old
            NotFoundError: Unknown user
            UnauthorizedError: Current password is wrong
        """
        if not old_password or not new_password:
            raise ValidationError("passwords", "Old password and new password are required")
        check_password_policy(new_password, field="new_password")
        check_id(user_id, "user_id")

        async with self.users.transaction() as session:
            user = await _load_with_password(session, User.id == user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if not await _verify(old_password, user.password):
                raise UnauthorizedError("Current password is incorrect")
            if await _verify(new_password, user.password):
                raise ValidationError("new_password", "New password must be different from current password")

            # Hashed by the before_update hook
            user.password = new_password
            user.updated_at = datetime.now(timezone.utc)

        log.info(f"Password changed for user {user_id}")
