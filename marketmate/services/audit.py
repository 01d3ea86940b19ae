from __future__ import annotations
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.models.enums import ModerationAction, ReportTargetType
from marketmate.models.moderation_log import ModerationLog


async def record_moderation(
    db: AsyncSession,
    *,
    admin_id: str,
    action: ModerationAction,
    target_type: ReportTargetType,
    target_id: str,
    report_id: str | None = None,
    details: dict | None = None,
) -> ModerationLog:
    entry = ModerationLog(
        admin_id=admin_id,
        action=action.value,
        target_type=target_type.value,
        target_id=target_id,
        report_id=report_id,
        details=details or {},
    )
    db.add(entry)
    await db.flush()
    return entry
