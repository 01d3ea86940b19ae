import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from marketmate.core.config import settings
from marketmate.services.outbox_dispatcher import dispatch_outbox
from worker.celery_app import celery


log = logging.getLogger(__name__)

BATCH_SIZE = 100


async def _tick() -> int:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            count = await dispatch_outbox(db, batch_size=BATCH_SIZE)
    finally:
        await engine.dispose()
    if count:
        log.info("tick: enqueued %d outbox events", count)
    return count


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=logging.INFO)
    log.info("dispatcher: started")
    last_sweep = 0.0
    while True:
        try:
            await _tick()
        except Exception:
            log.exception("dispatcher: tick crashed")

        if time.monotonic() - last_sweep >= settings.expiry_sweep_seconds:
            try:
                celery.send_task("worker.tasks.expire_overdue_listings", queue="default")
                last_sweep = time.monotonic()
            except Exception:
                log.exception("dispatcher: could not enqueue expiry sweep")

        await asyncio.sleep(settings.dispatcher_poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
