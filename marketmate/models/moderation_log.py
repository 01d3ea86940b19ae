from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from marketmate.core.clock import utcnow
from marketmate.core.ids import id_factory
from marketmate.models.base import Base, JSONType
from marketmate.models.enums import ModerationAction, ReportTargetType, check_in


class ModerationLog(Base):
    """Append-only: rows are inserted and never updated or deleted."""

    __tablename__ = "moderation_logs"
    __table_args__ = (
        CheckConstraint(check_in("action", ModerationAction), name="chk_mlogs_action"),
        CheckConstraint(check_in("target_type", ReportTargetType), name="chk_mlogs_target_type"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("mlg"))
    admin_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    action: Mapped[str] = mapped_column(String(40), nullable=False)

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String, nullable=False)

    report_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("reports.id", ondelete="SET NULL"), nullable=True, index=True
    )

    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
