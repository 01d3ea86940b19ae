import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from worker.celery_app import celery
from marketmate.core.config import settings
import marketmate.models  # noqa: F401  # ensures Models are registered
from marketmate.services.listings import ListingLifecycle
from marketmate.services.outbox_dispatcher import process_outbox_event as deliver
from marketmate.services.retry import run_atomic
from marketmate.services.site_settings import load_site_settings


log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str, lease_id: str) -> bool:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            return await deliver(db, outbox_id, lease_id)
    finally:
        await engine.dispose()


async def _expire_overdue_listings() -> list[str]:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            lifecycle = ListingLifecycle(db, await load_site_settings(db))
            return await run_atomic(db, lifecycle.expire_overdue)
    finally:
        await engine.dispose()


@celery.task(name="worker.tasks.process_outbox_event")
def process_outbox_event(outbox_id: str, lease_id: str) -> bool:
    return asyncio.run(_process_outbox_event(outbox_id, lease_id))


@celery.task(name="worker.tasks.expire_overdue_listings")
def expire_overdue_listings() -> int:
    expired = asyncio.run(_expire_overdue_listings())
    log.info("expire_overdue_listings: %d expired", len(expired))
    return len(expired)
