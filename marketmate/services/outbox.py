from __future__ import annotations
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.models.enums import NotificationType
from marketmate.models.outbox import OutboxEvent


def emit(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    recipients: list[str],
    notification_type: NotificationType,
    data: dict[str, Any] | None = None,
) -> None:
    """
    Queue a notification-bearing event in the current transaction.
    Delivery happens after commit (see outbox_dispatcher); a failed
    delivery never rolls the state change back.
    """
    db.add(
        OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload={
                "recipients": sorted(set(recipients)),
                "notification_type": notification_type.value,
                "data": data or {},
            },
            status="pending",
        )
    )
