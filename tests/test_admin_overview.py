import os

import pytest
from sqlalchemy import select

from app.models.audit_log import AuditLog
from app.models.payment import Payment
from fixtures_seed import create_listing, settle_listing

ADMIN = {"X-Internal-Admin-Key": os.getenv("INTERNAL_ADMIN_KEY", "test-internal")}


@pytest.mark.asyncio
async def test_overview_counts_platform_activity(client, db_session, seed_users):
    creator_id = seed_users["creator"]["user_id"]
    live = await create_listing(db_session, creator_id=creator_id)
    sold, reference = await settle_listing(client, db_session, seed_users)

    db_session.add(AuditLog(actor_user_id=creator_id, action="listing.created", target_type="listing", target_id=live.id))
    await db_session.commit()

    payment = (await db_session.execute(select(Payment).where(Payment.reference == reference))).scalar_one()

    r = await client.get("/v1/internal/overview", headers=ADMIN)
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["stats"] == {
        "total_users": 3,
        "total_listings": 2,
        "active_listings": 1,
        "total_bids": 1,
        "total_payments": 1,
        "total_revenue": payment.amount,
        "platform_fees": payment.fee_amount,
    }

    users = {u["id"]: u for u in body["users"]}
    assert users[creator_id]["listing_count"] == 2
    assert users[seed_users["bidder"]["user_id"]]["bid_count"] == 1
    assert users[seed_users["rival"]["user_id"]]["bid_count"] == 0

    assert {row["id"] for row in body["listings"]} == {live.id, sold.id}
    assert all(row["creator"]["email"] == "creator@test.com" for row in body["listings"])

    created = [a for a in body["activity"] if a["action"] == "listing.created"]
    assert created[0]["actor"]["display_name"] == "Creator"


@pytest.mark.asyncio
async def test_overview_requires_internal_admin_key(client, seed_users):
    r = await client.get("/v1/internal/overview", headers=seed_users["creator"]["headers"])
    assert r.status_code == 403
