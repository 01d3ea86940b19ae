import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.clock import utcnow
from marketmate.core.db import get_db
from marketmate.core.security import generate_api_key
from marketmate.models.api_key import ApiKey
from marketmate.models.user import User
from marketmate.schemas.user import RotateKeyOut, UserBootstrap, UserBootstrapOut, UserOut, UserStatusUpdate
from marketmate.services.auth import Actor, require_admin
from marketmate.services.internal_admin import require_internal_admin
from marketmate.services.retry import run_atomic
from marketmate.services.users import get_user, revoke_api_keys, set_user_status


log = logging.getLogger(__name__)
router = APIRouter()


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        display_name=user.display_name,
        email=user.email,
        role=user.role,
        status=user.status,
    )


@router.post("/users/bootstrap", response_model=UserBootstrapOut, dependencies=[Depends(require_internal_admin)])
async def bootstrap_user(payload: UserBootstrap, db: AsyncSession = Depends(get_db)) -> UserBootstrapOut:
    """
    Create a user and their first API key. Users are provisioned by the
    identity provider; this is the ops-side hook it calls.
    """
    user = User(
        display_name=payload.display_name,
        email=payload.email,
        role=payload.role.value,
        updated_by="internal",
    )
    key = generate_api_key()

    try:
        db.add(user)
        await db.flush()
        db.add(ApiKey(user_id=user.id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.exception("bootstrap failed: integrity error")
        raise HTTPException(status_code=409, detail="User already exists")

    log.info("user %s: bootstrapped as %s", user.id, user.role)
    return UserBootstrapOut(user_id=user.id, role=user.role, api_key=key.plain)


@router.post(
    "/users/{user_id}/rotate-key",
    response_model=RotateKeyOut,
    dependencies=[Depends(require_internal_admin)],
)
async def rotate_user_key(user_id: str, db: AsyncSession = Depends(get_db)) -> RotateKeyOut:
    key = generate_api_key()

    async def work() -> int:
        await get_user(db, user_id)
        revoked = await revoke_api_keys(db, user_id)
        db.add(ApiKey(
            user_id=user_id,
            key_prefix=key.prefix,
            key_hash=key.hashed,
            is_active=True,
            rotated_at=utcnow(),
        ))
        await db.flush()
        return revoked

    revoked = await run_atomic(db, work)
    log.info("user %s: api key rotated (%d revoked)", user_id, revoked)
    return RotateKeyOut(user_id=user_id, api_key=key.plain, revoked=revoked)


@router.get("/admin/users/{user_id}", response_model=UserOut)
async def admin_get_user(
    user_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    return _user_out(await get_user(db, user_id))


@router.put("/admin/users/{user_id}/status", response_model=UserOut)
async def admin_set_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    user = await run_atomic(
        db, lambda: set_user_status(db, user_id=user_id, status=payload.status, changed_by=actor.user_id)
    )
    return _user_out(user)
