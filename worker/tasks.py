import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from app.core.clock import utcnow
from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.services.audit import audit
from app.services.outbox_dispatcher import process_outbox_event as process_claimed_event
from app.services.sweeper import sweep

log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str, lease_id: str) -> None:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with Session() as db:
            handled = await process_claimed_event(db, outbox_id=outbox_id, lease_id=lease_id)
            if not handled:
                log.info("outbox event %s not handled (lease lost or failed)", outbox_id)
    finally:
        await engine.dispose()


async def _sweep_expired_listings() -> int:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    try:
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
    finally:
        await engine.dispose()
    return result.ended_count


@celery.task(name="worker.tasks.process_outbox_event", bind=True, max_retries=5)
def process_outbox_event(self, outbox_id: str, lease_id: str) -> None:
    asyncio.run(_process_outbox_event(outbox_id, lease_id))


@celery.task(name="worker.tasks.sweep_expired_listings", bind=True)
def sweep_expired_listings(self) -> int:
    return asyncio.run(_sweep_expired_listings())
