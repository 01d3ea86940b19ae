from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from marketmate.core.clock import utcnow
from marketmate.core.ids import id_factory
from marketmate.models.base import Base
from marketmate.models.enums import ReportReason, ReportStatus, ReportTargetType, check_in


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint(check_in("target_type", ReportTargetType), name="chk_reports_target_type"),
        CheckConstraint(check_in("reason", ReportReason), name="chk_reports_reason"),
        CheckConstraint(check_in("status", ReportStatus), name="chk_reports_status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("rpt"))
    reporter_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String, nullable=False)

    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ReportStatus.OPEN.value, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
