from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.errors import ForbiddenError, NotFoundError, ValidationError
from marketmate.models.api_key import ApiKey
from marketmate.models.enums import UserRole, UserStatus
from marketmate.models.user import User


log = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def set_user_status(db: AsyncSession, *, user_id: str, status: UserStatus, changed_by: str) -> User:
    """
    Flip a user's account status. Banned and suspended users keep their
    data but their API keys stop authenticating (see services.auth).
    """
    stmt = select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    if user.role == UserRole.ADMIN and status != UserStatus.ACTIVE:
        raise ForbiddenError("Admin accounts cannot be suspended or banned")
    if user.id == changed_by:
        raise ValidationError("You cannot change your own account status")

    if user.status != status:
        user.status = status.value
        user.updated_by = changed_by
        await db.flush()
        log.info("user %s: status -> %s by %s", user.id, status.value, changed_by)
    return user


async def revoke_api_keys(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(ApiKey).where(ApiKey.user_id == user_id, ApiKey.is_active.is_(True)).values(is_active=False)
    )
    return int(result.rowcount or 0)
