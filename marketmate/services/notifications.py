from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.errors import NotFoundError
from marketmate.models.enums import NotificationType
from marketmate.models.notification import Notification
from marketmate.models.outbox import OutboxEvent


log = logging.getLogger(__name__)


def notifications_for_event(event: OutboxEvent) -> list[Notification]:
    payload = event.payload or {}
    kind = NotificationType(payload["notification_type"])
    meta = {"event_type": event.event_type, "event_id": event.id, **(payload.get("data") or {})}
    return [
        Notification(user_id=user_id, type=kind.value, metadata_=meta)
        for user_id in payload.get("recipients", [])
        if user_id
    ]


async def deliver_event(db: AsyncSession, event: OutboxEvent) -> int:
    """Materialise an outbox event as in-app notifications."""
    rows = notifications_for_event(event)
    db.add_all(rows)
    await db.flush()
    log.info("outbox %s (%s): %d notifications", event.id, event.event_type, len(rows))
    return len(rows)


async def list_notifications(
    db: AsyncSession,
    *,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def mark_read(db: AsyncSession, *, user_id: str, notification_id: str) -> Notification:
    row = (await db.execute(
        select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )).scalar_one_or_none()
    if not row:
        raise NotFoundError("Notification not found")
    row.is_read = True
    await db.flush()
    return row
