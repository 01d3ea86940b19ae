from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marketmate.models.enums import ReportReason, ReportTargetType


class ReportCreate(BaseModel):
    target_type: ReportTargetType
    target_id: str
    reason: ReportReason
    details: str | None = None


class ReportClose(BaseModel):
    # a moderation action, or "close" to dismiss
    action: str
    details: dict[str, Any] = Field(default_factory=dict)


class BulkClose(BaseModel):
    report_ids: list[str] = Field(min_length=1, max_length=200)
    action: str
    details: dict[str, Any] = Field(default_factory=dict)


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reporter_id: str
    target_type: str
    target_id: str
    reason: str
    details: str | None
    status: str
    created_at: datetime
    closed_at: datetime | None
    closed_by: str | None


class ModerationLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    admin_id: str
    action: str
    target_type: str
    target_id: str
    report_id: str | None
    details: dict
    created_at: datetime


class ReportCloseOut(BaseModel):
    report: ReportOut
    log: ModerationLogOut | None


class BulkCloseOut(BaseModel):
    resolved: list[str]
    failed: list[dict]
