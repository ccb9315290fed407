import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.clock import utcnow
from app.core.config import settings
import app.models  # noqa: F401
from app.services.audit import audit
from app.services.outbox_dispatcher import dispatch_outbox
from app.services.sweeper import sweep
from worker.celery_app import celery


log = logging.getLogger(__name__)

BATCH_SIZE = 100


async def _tick() -> tuple[int, int]:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        result = await sweep(db, now=utcnow())
        await db.commit()
        if result.ended_count:
            await audit(
                db,
                actor_user_id=None,
                action="listings.swept",
                target_type="listing",
                detail={"ended_count": result.ended_count, "listing_ids": result.listing_ids},
            )

    async with Session() as db:
        dispatched = await dispatch_outbox(db, batch_size=BATCH_SIZE)

    await engine.dispose()
    return result.ended_count, dispatched


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=logging.INFO)
    log.info("dispatcher: started, polling every %ss", settings.sweep_poll_seconds)
    while True:
        try:
            ended, dispatched = await _tick()
            if ended or dispatched:
                log.info("dispatcher: ended %d listings, dispatched %d events", ended, dispatched)
        except Exception:
            log.exception("dispatcher: tick crashed")
        await asyncio.sleep(settings.sweep_poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
