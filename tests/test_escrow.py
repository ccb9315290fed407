import pytest
from sqlalchemy import select

from app.models.enums import LedgerEntryType, ListingStatus, PaymentStatus
from app.models.ledger_entry import LedgerEntry
from app.models.listing import Listing
from app.models.payment import Payment
from app.models.user import User
from fixtures_seed import reload, settle_listing


@pytest.mark.asyncio
async def test_complete_requires_delivery(client, db_session, seed_users):
    listing, _ = await settle_listing(client, db_session, seed_users)

    r = await client.post(f"/v1/listings/{listing.id}/complete", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 400, r.text
    assert r.json()["detail"]["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_complete_only_by_winner(client, db_session, seed_users):
    listing, _ = await settle_listing(client, db_session, seed_users)
    await client.post(f"/v1/listings/{listing.id}/deliver", headers=seed_users["creator"]["headers"])

    for who in ("creator", "rival"):
        r = await client.post(f"/v1/listings/{listing.id}/complete", headers=seed_users[who]["headers"])
        assert r.status_code == 403, r.text


@pytest.mark.asyncio
async def test_complete_releases_escrow_exactly_once(client, db_session, seed_users):
    listing, reference = await settle_listing(client, db_session, seed_users)
    creator_id = seed_users["creator"]["user_id"]

    r = await client.post(f"/v1/listings/{listing.id}/deliver", headers=seed_users["creator"]["headers"])
    assert r.status_code == 200, r.text

    r = await client.post(f"/v1/listings/{listing.id}/complete", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == ListingStatus.COMPLETED
    assert body["completed_at"] is not None
    assert body["escrow_released_at"] is not None

    creator = await reload(db_session, User, creator_id)
    assert creator.wallet_balance == 4950
    assert creator.escrow_balance == 0
    assert creator.total_sales == 1
    assert creator.total_earnings == 4950

    payment = (await db_session.execute(
        select(Payment).where(Payment.reference == reference).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.status == PaymentStatus.RELEASED
    assert payment.escrow_released_at is not None

    r = await client.post(f"/v1/listings/{listing.id}/complete", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 400

    creator = await reload(db_session, User, creator_id)
    assert creator.wallet_balance == 4950
    assert creator.total_sales == 1

    released = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.entry_type == LedgerEntryType.FUNDS_RELEASED)
    )).scalars().all()
    assert [(e.user_id, e.amount) for e in released] == [(creator_id, 4950)]
    assert (await reload(db_session, Listing, listing.id)).status == ListingStatus.COMPLETED
