from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.outbox import OutboxEvent
from app.services.notifications import apply_outbox_event
from worker.celery_app import celery

log = logging.getLogger(__name__)

Enqueue = Callable[[str, str], None]


def celery_enqueue(outbox_id: str, lease_id: str) -> None:
    celery.send_task("worker.tasks.process_outbox_event", args=[outbox_id, lease_id], queue="outbox")


async def requeue_expired_leases(db: AsyncSession, *, now: datetime) -> int:
    requeued = (await db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.status == "processing",
            OutboxEvent.lease_expires_at.is_not(None),
            OutboxEvent.lease_expires_at < now,
        )
        .values(
            status="pending",
            lease_id=None,
            lease_expires_at=None,
            processing_started_at=None,
            last_error="requeued: lease expired",
        )
        .returning(OutboxEvent.id)
        .execution_options(synchronize_session=False)
    )).scalars().all()
    return len(requeued)


async def claim_outbox_event_ids(
    db: AsyncSession,
    *,
    now: datetime,
    batch_size: int = 100,
    lease_minutes: int = 10,
) -> tuple[str, list[str]]:
    lease_id = uuid.uuid4().hex

    # Lock and select pending rows
    ids = (await db.execute(
        select(OutboxEvent.id)
        .where(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )).scalars().all()
    if not ids:
        return lease_id, []

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(ids))
        .values(
            status="processing",
            processing_started_at=now,
            attempts=OutboxEvent.attempts + 1,
            last_error=None,
            lease_id=lease_id,
            lease_expires_at=now + timedelta(minutes=lease_minutes),
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return lease_id, list(ids)


async def dispatch_outbox(
    db: AsyncSession,
    *,
    batch_size: int = 100,
    lease_minutes: int = 10,
    enqueue: Enqueue | None = None,
    now: datetime | None = None,
) -> int:
    enqueue = enqueue or celery_enqueue
    now = now or utcnow()

    # reclaim expired leases
    await requeue_expired_leases(db, now=now)
    lease_id, ids = await claim_outbox_event_ids(db, now=now, batch_size=batch_size, lease_minutes=lease_minutes)

    # Commit before enqueue so workers can read status/rows
    await db.commit()
    if not ids:
        return 0

    failed: list[tuple[str, str]] = []
    dispatched = 0
    for outbox_id in ids:
        try:
            enqueue(outbox_id, lease_id)
            dispatched += 1
        except Exception as e:
            log.warning("outbox enqueue failed: %s %s", outbox_id, e)
            failed.append((outbox_id, f"{type(e).__name__}: {e}"))

    # if enqueue fails, return those items to pending
    if failed:
        for outbox_id, msg in failed:
            await db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                .values(
                    status="pending",
                    lease_id=None,
                    lease_expires_at=None,
                    processing_started_at=None,
                    last_error=f"enqueue failed: {msg}",
                )
                .execution_options(synchronize_session=False)
            )
        await db.commit()

    return dispatched


async def process_outbox_event(db: AsyncSession, *, outbox_id: str, lease_id: str, now: datetime | None = None) -> bool:
    """
    Worker side of a claimed event: build its notifications and mark it done.
    Returns False if the lease was lost (another dispatcher reclaimed it).
    """
    now = now or utcnow()
    ev = (await db.execute(
        select(OutboxEvent).where(OutboxEvent.id == outbox_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not ev or ev.lease_id != lease_id or ev.status != "processing":
        return False

    try:
        await apply_outbox_event(db, ev)
        done = (await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
            .values(status="done", processed_at=now, lease_id=None, lease_expires_at=None)
            .returning(OutboxEvent.id)
            .execution_options(synchronize_session=False)
        )).scalar_one_or_none()
        if done is None:
            # lease lost; do not overwrite
            await db.rollback()
            return False
        await db.commit()
        return True
    except Exception as e:
        await db.rollback()
        log.exception("outbox event failed: %s", outbox_id)
        await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
            .values(
                status="pending",
                lease_id=None,
                lease_expires_at=None,
                processing_started_at=None,
                last_error=f"{type(e).__name__}: {e}",
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return False
