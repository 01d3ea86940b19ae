"""
Outbox delivery under leases.

dispatch_outbox claims a batch of pending events, stamps them with one
lease id and hands each to a Celery worker. process_outbox_event only
acts while the row still carries that lease, so a dispatcher that
requeued an expired lease cannot be overwritten by a slow worker.
Events that keep failing stop at ``outbox_max_attempts`` as ``failed``.
"""
import logging
import uuid
from datetime import timedelta

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.clock import utcnow
from marketmate.core.config import settings
from marketmate.models.outbox import OutboxEvent
from marketmate.services.notifications import deliver_event


log = logging.getLogger(__name__)

PENDING, PROCESSING, DONE, FAILED = "pending", "processing", "done", "failed"

_CLEAR_LEASE = {"lease_id": None, "lease_expires_at": None, "processing_started_at": None}


def _retry_or_park():
    # back to pending until the attempt budget is spent
    return case((OutboxEvent.attempts >= settings.outbox_max_attempts, FAILED), else_=PENDING)


async def requeue_expired_leases(db: AsyncSession) -> int:
    stmt = (
        update(OutboxEvent)
        .where(
            OutboxEvent.status == PROCESSING,
            OutboxEvent.lease_expires_at.is_not(None),
            OutboxEvent.lease_expires_at < utcnow(),
        )
        .values(status=_retry_or_park(), last_error="lease expired", **_CLEAR_LEASE)
        .execution_options(synchronize_session=False)
    )
    requeued = int((await db.execute(stmt)).rowcount or 0)
    if requeued:
        log.info("outbox: %d expired leases released", requeued)
    return requeued


async def claim_outbox_event_ids(
    db: AsyncSession,
    batch_size: int = 100,
    lease_minutes: int = 10,
) -> tuple[str, list[str]]:
    """Lease up to ``batch_size`` pending events, oldest first."""
    lease_id = uuid.uuid4().hex
    pending = (
        select(OutboxEvent.id)
        .where(OutboxEvent.status == PENDING)
        .order_by(OutboxEvent.created_at, OutboxEvent.id)
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    ids = list((await db.execute(pending)).scalars())
    if ids:
        now = utcnow()
        await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(ids))
            .values(
                status=PROCESSING,
                attempts=OutboxEvent.attempts + 1,
                lease_id=lease_id,
                lease_expires_at=now + timedelta(minutes=lease_minutes),
                processing_started_at=now,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        await db.flush()
    return lease_id, ids


async def _release(db: AsyncSession, outbox_id: str, lease_id: str, error: str) -> None:
    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
        .values(status=_retry_or_park(), last_error=error[:2000], **_CLEAR_LEASE)
        .execution_options(synchronize_session=False)
    )


async def process_outbox_event(db: AsyncSession, outbox_id: str, lease_id: str) -> bool:
    """
    Turn one leased event into notifications and mark it done, in one
    commit. Returns False when the lease is no longer ours or delivery
    failed.
    """
    ev = (await db.execute(
        select(OutboxEvent).where(OutboxEvent.id == outbox_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if ev is None or ev.status != PROCESSING or ev.lease_id != lease_id:
        return False

    try:
        await deliver_event(db, ev)
        done = await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
            .values(status=DONE, processed_at=utcnow(), lease_id=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        if not done.rowcount:
            await db.rollback()
            log.info("outbox %s: lease %s lost before commit", outbox_id, lease_id)
            return False
        await db.commit()
        return True
    except Exception as e:
        await db.rollback()
        log.exception("outbox %s: delivery failed", outbox_id)
        await _release(db, outbox_id, lease_id, f"{type(e).__name__}: {e}")
        await db.commit()
        return False


async def dispatch_outbox(db: AsyncSession, batch_size: int = 100, lease_minutes: int = 10) -> int:
    """Release stale leases, lease a batch and enqueue one task per event."""
    from worker.celery_app import celery

    await requeue_expired_leases(db)
    lease_id, ids = await claim_outbox_event_ids(db, batch_size=batch_size, lease_minutes=lease_minutes)
    # workers must see the lease before their task runs
    await db.commit()

    dispatched = 0
    for outbox_id in ids:
        try:
            celery.send_task("worker.tasks.process_outbox_event", args=[outbox_id, lease_id], queue="outbox")
        except Exception as e:
            log.warning("outbox %s: enqueue failed: %s", outbox_id, e)
            await _release(db, outbox_id, lease_id, f"enqueue failed: {type(e).__name__}: {e}")
            continue
        dispatched += 1

    if dispatched != len(ids):
        await db.commit()
    return dispatched
