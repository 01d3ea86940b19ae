from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.api.v1.deps import get_lifecycle
from marketmate.core.db import get_db
from marketmate.services.internal_admin import require_internal_admin
from marketmate.services.listings import ListingLifecycle
from marketmate.services.outbox_dispatcher import dispatch_outbox
from marketmate.services.retry import run_atomic

router = APIRouter()

@router.post("/internal/outbox/dispatch", dependencies=[Depends(require_internal_admin)])
async def internal_dispatch_outbox(db: AsyncSession = Depends(get_db)) -> dict:
    count = await dispatch_outbox(db, batch_size=100)
    return {"dispatched": count}


@router.post("/internal/listings/expire", dependencies=[Depends(require_internal_admin)])
async def internal_expire_listings(lifecycle: ListingLifecycle = Depends(get_lifecycle)) -> dict:
    expired = await run_atomic(lifecycle.db, lifecycle.expire_overdue)
    return {"expired": len(expired), "listing_ids": expired}
