from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.db import get_db
from marketmate.models.notification import Notification
from marketmate.schemas.notification import NotificationOut
from marketmate.services.auth import Actor, get_actor
from marketmate.services.notifications import list_notifications, mark_read
from marketmate.services.retry import run_atomic

router = APIRouter()


def _out(n: Notification) -> NotificationOut:
    return NotificationOut(id=n.id, type=n.type, metadata=n.metadata_, is_read=n.is_read, created_at=n.created_at)


@router.get("/notifications", response_model=list[NotificationOut])
async def get_notifications(
    unread: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
    rows = await list_notifications(db, user_id=actor.user_id, unread_only=unread, limit=limit, offset=offset)
    return [_out(n) for n in rows]


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
async def read_notification(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    row = await run_atomic(db, lambda: mark_read(db, user_id=actor.user_id, notification_id=notification_id))
    return _out(row)
