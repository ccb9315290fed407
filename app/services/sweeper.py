from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing
from app.services.events import emit_event
from app.services.listings import end_expired_listings, listing_event_payload

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    ended_count: int
    listing_ids: list[str] = field(default_factory=list)


async def sweep(db: AsyncSession, *, now: datetime, batch_size: int = 500) -> SweepResult:
    """
    Force ACTIVE listings whose end_at has passed into ENDED.

    System action, no per-listing authorization. Safe to run repeatedly and
    from several invokers at once: rows are claimed with SKIP LOCKED and the
    update is guarded on status, so a second run finds nothing. Does not pick
    winners or touch payments. The caller commits.
    """
    ended_ids: list[str] = []
    while True:
        batch = await end_expired_listings(db, now=now, batch_size=batch_size)
        ended_ids.extend(batch)
        if len(batch) < batch_size:
            break

    if not ended_ids:
        return SweepResult(ended_count=0, listing_ids=[])

    rows = (await db.execute(select(Listing).where(Listing.id.in_(ended_ids)))).scalars().all()
    for listing in rows:
        emit_event(
            db,
            aggregate_type="listing",
            aggregate_id=listing.id,
            event_type="listing.ended",
            payload=listing_event_payload(listing, early=False),
        )

    log.info("sweep: ended %d listings", len(ended_ids))
    return SweepResult(ended_count=len(ended_ids), listing_ids=ended_ids)
