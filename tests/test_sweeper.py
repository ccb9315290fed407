import os
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.clock import utcnow
from app.models.audit_log import AuditLog
from app.models.enums import ListingStatus
from app.models.listing import Listing
from app.models.outbox import OutboxEvent
from app.services.sweeper import sweep
from fixtures_seed import create_listing, reload

ADMIN = {"X-Internal-Admin-Key": os.getenv("INTERNAL_ADMIN_KEY", "test-internal")}


@pytest.mark.asyncio
async def test_sweep_ends_expired_listings_once(client, db_session, seed_users):
    creator_id = seed_users["creator"]["user_id"]
    expired = await create_listing(db_session, creator_id=creator_id, end_at=utcnow() - timedelta(minutes=5))
    running = await create_listing(db_session, creator_id=creator_id)

    r = await client.post("/v1/internal/sweep", headers=ADMIN)
    assert r.status_code == 200, r.text
    assert r.json() == {"ended_count": 1, "listing_ids": [expired.id]}

    assert (await reload(db_session, Listing, expired.id)).status == ListingStatus.ENDED
    assert (await reload(db_session, Listing, running.id)).status == ListingStatus.ACTIVE

    r = await client.post("/v1/internal/sweep", headers=ADMIN)
    assert r.status_code == 200, r.text
    assert r.json() == {"ended_count": 0, "listing_ids": []}

    ended_events = (await db_session.execute(
        select(func.count()).select_from(OutboxEvent).where(OutboxEvent.event_type == "listing.ended")
    )).scalar_one()
    assert ended_events == 1

    audits = (await db_session.execute(
        select(func.count()).select_from(AuditLog).where(AuditLog.action == "listings.swept")
    )).scalar_one()
    assert audits == 1


@pytest.mark.asyncio
async def test_sweep_leaves_non_active_listings_alone(db_session, seed_users):
    creator_id = seed_users["creator"]["user_id"]
    past = utcnow() - timedelta(hours=1)
    cancelled = await create_listing(db_session, creator_id=creator_id, status=ListingStatus.CANCELLED, end_at=past)
    paid = await create_listing(db_session, creator_id=creator_id, status=ListingStatus.PAID, end_at=past)

    result = await sweep(db_session, now=utcnow())
    await db_session.commit()

    assert result.ended_count == 0
    assert (await reload(db_session, Listing, cancelled.id)).status == ListingStatus.CANCELLED
    assert (await reload(db_session, Listing, paid.id)).status == ListingStatus.PAID


@pytest.mark.asyncio
async def test_sweep_requires_internal_admin_key(client):
    r = await client.post("/v1/internal/sweep")
    assert r.status_code == 403

    r = await client.post("/v1/internal/sweep", headers={"X-Internal-Admin-Key": "wrong"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_sweep_drains_every_batch(db_session, seed_users):
    creator_id = seed_users["creator"]["user_id"]
    past = utcnow() - timedelta(minutes=10)
    expired_ids = [
        (await create_listing(db_session, creator_id=creator_id, end_at=past - timedelta(seconds=i))).id
        for i in range(5)
    ]

    result = await sweep(db_session, now=utcnow(), batch_size=2)
    await db_session.commit()

    assert result.ended_count == 5
    assert sorted(result.listing_ids) == sorted(expired_ids)
    still_active = (await db_session.execute(
        select(func.count()).select_from(Listing).where(Listing.status == ListingStatus.ACTIVE)
    )).scalar_one()
    assert still_active == 0
