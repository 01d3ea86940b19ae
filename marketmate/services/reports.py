"""
Reports against listings or users, and the admin actions that close them.

A report is open until an admin closes it, once. Closing with a
moderation action writes exactly one ModerationLog row that references
the report; destructive actions then act on the target through the
listing lifecycle or the user status collaborator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.clock import utcnow
from marketmate.core.errors import (
    AlreadyResolvedError,
    ForbiddenError,
    MarketError,
    NotFoundError,
    ValidationError,
)
from marketmate.models.enums import (
    ListingStatus,
    ModerationAction,
    NotificationType,
    ReportReason,
    ReportStatus,
    ReportTargetType,
    UserStatus,
)
from marketmate.models.listing import Listing
from marketmate.models.moderation_log import ModerationLog
from marketmate.models.report import Report
from marketmate.models.user import User
from marketmate.services.audit import record_moderation
from marketmate.services.auth import Actor
from marketmate.services.listings import ListingLifecycle
from marketmate.services.outbox import emit
from marketmate.services.retry import run_atomic
from marketmate.services.state_machine import LISTING_TRANSITIONS, is_terminal, transition_report
from marketmate.services.users import set_user_status


log = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 500

# actions an admin may pick when closing a report
REPORT_ACTIONS = (
    ModerationAction.WARN,
    ModerationAction.DELETE_LISTING,
    ModerationAction.SUSPEND_LISTING,
    ModerationAction.BAN_USER,
    ModerationAction.UNBAN_USER,
)
LISTING_ACTIONS = (ModerationAction.DELETE_LISTING, ModerationAction.SUSPEND_LISTING)
USER_ACTIONS = {ModerationAction.BAN_USER: UserStatus.BANNED, ModerationAction.UNBAN_USER: UserStatus.ACTIVE}


@dataclass
class BulkResolution:
    resolved: list[str] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


class ModerationWorkflow:
    def __init__(self, db: AsyncSession, lifecycle: ListingLifecycle):
        self.db = db
        self.lifecycle = lifecycle

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Admin role required")

    async def _require_target(self, reporter: Actor, target_type: ReportTargetType, target_id: str) -> None:
        if target_type == ReportTargetType.LISTING:
            # a listing the reporter cannot see does not exist for them
            await self.lifecycle.get_visible(target_id, reporter)
        elif await self.db.get(User, target_id) is None:
            raise NotFoundError("User not found")

    async def get(self, report_id: str) -> Report:
        report = await self.db.get(Report, report_id)
        if report is None:
            raise NotFoundError("Report not found")
        return report

    async def _lock(self, report_id: str) -> Report:
        stmt = select(Report).where(Report.id == report_id).with_for_update().execution_options(populate_existing=True)
        report = (await self.db.execute(stmt)).scalar_one_or_none()
        if report is None:
            raise NotFoundError("Report not found")
        return report

    async def file_report(
        self,
        reporter: Actor,
        target_type: ReportTargetType,
        target_id: str,
        reason: ReportReason,
        details: str | None = None,
    ) -> Report:
        if details and len(details) > MAX_DETAILS_LENGTH:
            raise ValidationError(f"details must be at most {MAX_DETAILS_LENGTH} characters")
        if target_type == ReportTargetType.USER and target_id == reporter.user_id:
            raise ValidationError("You cannot report yourself")
        await self._require_target(reporter, target_type, target_id)

        duplicate = (await self.db.execute(
            select(Report.id).where(
                Report.reporter_id == reporter.user_id,
                Report.target_type == target_type.value,
                Report.target_id == target_id,
                Report.status == ReportStatus.OPEN.value,
            )
        )).first()
        if duplicate:
            raise ValidationError(
                "You already have an open report on this target",
                details=[{"report_id": duplicate[0]}],
            )

        report = Report(
            reporter_id=reporter.user_id,
            target_type=target_type.value,
            target_id=target_id,
            reason=reason.value,
            details=details,
            status=ReportStatus.OPEN.value,
        )
        self.db.add(report)
        await self.db.flush()
        log.info("report %s: %s reported %s %s (%s)", report.id, reporter.user_id, target_type.value, target_id, reason.value)
        return report

    def _close(self, report: Report, admin: Actor, now: datetime) -> None:
        transition_report(report, ReportStatus.CLOSED)
        report.closed_at = now
        report.closed_by = admin.user_id

    async def _user_for_action(self, report: Report) -> str:
        if report.target_type == ReportTargetType.USER:
            return report.target_id
        listing = await self.db.get(Listing, report.target_id)
        if listing is None:
            raise NotFoundError("Reported listing no longer exists")
        return listing.owner_id

    async def resolve(
        self,
        report_id: str,
        admin: Actor,
        action: ModerationAction,
        details: dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> tuple[Report, ModerationLog]:
        now = now or utcnow()
        self._require_admin(admin)
        if action not in REPORT_ACTIONS:
            raise ValidationError(f"Unsupported moderation action: {action.value}")

        report = await self._lock(report_id)
        if report.status == ReportStatus.CLOSED:
            raise AlreadyResolvedError("Report is already closed")

        target_type = ReportTargetType(report.target_type)
        target_id = report.target_id

        if action in LISTING_ACTIONS:
            if target_type != ReportTargetType.LISTING:
                raise ValidationError(f"{action.value} needs a listing report")
            listing = await self.lifecycle.lock(report.target_id)
            if listing.status == ListingStatus.DRAFT:
                await self.lifecycle.delete(listing.id, admin)
            # sold and archived listings are already off the market
            elif not is_terminal(LISTING_TRANSITIONS, ListingStatus(listing.status)):
                await self.lifecycle.archive(listing, admin)
        elif action in USER_ACTIONS:
            target_type = ReportTargetType.USER
            target_id = await self._user_for_action(report)
            await set_user_status(self.db, user_id=target_id, status=USER_ACTIONS[action], changed_by=admin.user_id)

        self._close(report, admin, now)
        entry = await record_moderation(
            self.db,
            admin_id=admin.user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            report_id=report.id,
            details=details,
        )
        emit(
            self.db,
            aggregate_type="report",
            aggregate_id=report.id,
            event_type="report.closed",
            recipients=[report.reporter_id],
            notification_type=NotificationType.REPORT_UPDATE,
            data={"report_id": report.id, "action": action.value},
        )
        await self.db.flush()
        log.info("report %s: closed by %s with %s on %s %s", report.id, admin.user_id, action.value, target_type.value, target_id)
        return report, entry

    async def dismiss(self, report_id: str, admin: Actor, *, now: datetime | None = None) -> Report:
        """Close without acting on the target; no moderation log entry."""
        now = now or utcnow()
        self._require_admin(admin)
        report = await self._lock(report_id)
        if report.status == ReportStatus.CLOSED:
            raise AlreadyResolvedError("Report is already closed")
        self._close(report, admin, now)
        await self.db.flush()
        log.info("report %s: dismissed by %s", report.id, admin.user_id)
        return report

    async def resolve_many(
        self,
        report_ids: list[str],
        admin: Actor,
        action: ModerationAction,
        details: dict[str, Any] | None = None,
    ) -> BulkResolution:
        """
        Resolve each report in its own transaction. Commits as it goes;
        a failure rolls back only that report and is listed in ``failed``.
        """
        self._require_admin(admin)
        out = BulkResolution()
        for report_id in dict.fromkeys(report_ids):
            try:
                await run_atomic(self.db, lambda rid=report_id: self.resolve(rid, admin, action, details))
            except MarketError as e:
                out.failed.append({"id": report_id, "code": e.code, "message": e.message})
                continue
            out.resolved.append(report_id)

        if out.failed:
            log.warning("bulk resolve: %d of %d failed", len(out.failed), len(out.failed) + len(out.resolved))
        return out

    async def list_reports(
        self,
        admin: Actor,
        *,
        status: ReportStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Report]:
        self._require_admin(admin)
        stmt = select(Report)
        if status:
            stmt = stmt.where(Report.status == status.value)
        stmt = stmt.order_by(Report.created_at.desc(), Report.id).limit(limit).offset(offset)
        return list((await self.db.execute(stmt)).scalars().all())

    async def list_logs(
        self,
        admin: Actor,
        *,
        target_type: ReportTargetType | None = None,
        target_id: str | None = None,
        report_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ModerationLog]:
        self._require_admin(admin)
        stmt = select(ModerationLog)
        if target_type:
            stmt = stmt.where(ModerationLog.target_type == target_type.value)
        if target_id:
            stmt = stmt.where(ModerationLog.target_id == target_id)
        if report_id:
            stmt = stmt.where(ModerationLog.report_id == report_id)
        stmt = stmt.order_by(ModerationLog.created_at.desc(), ModerationLog.id).limit(limit).offset(offset)
        return list((await self.db.execute(stmt)).scalars().all())
