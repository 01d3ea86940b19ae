from fastapi import APIRouter, Depends, Query

from marketmate.api.v1.deps import get_moderation
from marketmate.core.errors import ValidationError
from marketmate.models.enums import ModerationAction, ReportStatus, ReportTargetType
from marketmate.schemas.report import (
    BulkClose,
    BulkCloseOut,
    ModerationLogOut,
    ReportClose,
    ReportCloseOut,
    ReportCreate,
    ReportOut,
)
from marketmate.services.auth import Actor, require_admin, require_writable
from marketmate.services.reports import ModerationWorkflow
from marketmate.services.retry import run_atomic

router = APIRouter()

DISMISS = "close"


def _parse_action(raw: str) -> ModerationAction:
    try:
        return ModerationAction(raw)
    except ValueError as e:
        raise ValidationError(f"Unknown moderation action: {raw}", details=[{"field": "action"}]) from e


@router.post("/reports", response_model=ReportOut, status_code=201)
async def file_report(
    payload: ReportCreate,
    actor: Actor = Depends(require_writable),
    moderation: ModerationWorkflow = Depends(get_moderation),
) -> ReportOut:
    report = await run_atomic(
        moderation.db,
        lambda: moderation.file_report(actor, payload.target_type, payload.target_id, payload.reason, payload.details),
    )
    return ReportOut.model_validate(report)


@router.get("/reports", response_model=list[ReportOut])
async def list_reports(
    status: ReportStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(require_admin),
    moderation: ModerationWorkflow = Depends(get_moderation),
) -> list[ReportOut]:
    rows = await moderation.list_reports(actor, status=status, limit=limit, offset=offset)
    return [ReportOut.model_validate(r) for r in rows]


@router.put("/reports/{report_id}/close", response_model=ReportCloseOut)
async def close_report(
    report_id: str,
    payload: ReportClose,
    actor: Actor = Depends(require_admin),
    moderation: ModerationWorkflow = Depends(get_moderation),
) -> ReportCloseOut:
    if payload.action == DISMISS:
        report = await run_atomic(moderation.db, lambda: moderation.dismiss(report_id, actor))
        return ReportCloseOut(report=ReportOut.model_validate(report), log=None)

    action = _parse_action(payload.action)
    report, entry = await run_atomic(
        moderation.db, lambda: moderation.resolve(report_id, actor, action, payload.details)
    )
    return ReportCloseOut(report=ReportOut.model_validate(report), log=ModerationLogOut.model_validate(entry))


@router.post("/reports/close-bulk", response_model=BulkCloseOut)
async def close_reports_bulk(
    payload: BulkClose,
    actor: Actor = Depends(require_admin),
    moderation: ModerationWorkflow = Depends(get_moderation),
) -> BulkCloseOut:
    # each report commits on its own; failures are reported, not raised
    result = await moderation.resolve_many(payload.report_ids, actor, _parse_action(payload.action), payload.details)
    return BulkCloseOut(resolved=result.resolved, failed=result.failed)


@router.get("/admin/moderation-logs", response_model=list[ModerationLogOut])
async def list_moderation_logs(
    target_type: ReportTargetType | None = None,
    target_id: str | None = None,
    report_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(require_admin),
    moderation: ModerationWorkflow = Depends(get_moderation),
) -> list[ModerationLogOut]:
    rows = await moderation.list_logs(
        actor, target_type=target_type, target_id=target_id, report_id=report_id, limit=limit, offset=offset
    )
    return [ModerationLogOut.model_validate(r) for r in rows]
