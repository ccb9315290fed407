import pytest
from sqlalchemy import func, select

from app.models.enums import LedgerEntryType, ListingStatus, PaymentStatus
from app.models.ledger_entry import LedgerEntry
from app.models.listing import Listing
from app.models.payment import Payment
from app.models.user import User
from app.services.payments import compute_fee
from fixtures_seed import create_won_listing, reload, settle_listing


def test_fee_rounds_half_up():
    assert compute_fee(5500, 10) == (550, 4950)
    assert compute_fee(105, 10) == (11, 94)
    assert compute_fee(104, 10) == (10, 94)
    assert compute_fee(1000, 0) == (0, 1000)


async def _initiate(client, users, listing_id):
    r = await client.post(f"/v1/listings/{listing_id}/pay", headers=users["bidder"]["headers"])
    assert r.status_code == 200, r.text
    return r.json()


@pytest.mark.asyncio
async def test_initiate_payment_only_for_winner(client, db_session, seed_users):
    listing = await create_won_listing(db_session, seed_users)
    for who in ("creator", "rival"):
        r = await client.post(f"/v1/listings/{listing.id}/pay", headers=seed_users[who]["headers"])
        assert r.status_code == 403, r.text


@pytest.mark.asyncio
async def test_initiate_payment_computes_fee_and_reuses_pending(client, db_session, seed_users, fake_gateway):
    listing = await create_won_listing(db_session, seed_users)

    first = await _initiate(client, seed_users, listing.id)
    assert first["reference"].startswith("AMV_")
    assert first["amount"] == 5500
    assert first["fee_amount"] == 550
    assert first["net_amount"] == 4950
    assert first["authorization_url"].endswith(first["reference"])
    assert fake_gateway.initialized[first["reference"]] == 550000

    second = await _initiate(client, seed_users, listing.id)
    assert second["reference"] == first["reference"]

    count = (await db_session.execute(select(func.count()).select_from(Payment))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_gateway_rejection_leaves_no_payment(client, db_session, seed_users, fake_gateway):
    listing = await create_won_listing(db_session, seed_users)
    fake_gateway.init_ok = False

    r = await client.post(f"/v1/listings/{listing.id}/pay", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 502, r.text
    assert r.json()["detail"]["code"] == "external_failure"

    count = (await db_session.execute(select(func.count()).select_from(Payment))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_verify_settles_once(client, db_session, seed_users, fake_gateway):
    listing, reference = await settle_listing(client, db_session, seed_users)
    creator_id = seed_users["creator"]["user_id"]

    listing = await reload(db_session, Listing, listing.id)
    creator = await reload(db_session, User, creator_id)
    assert listing.status == ListingStatus.PAID
    assert creator.escrow_balance == 4950
    assert creator.wallet_balance == 0

    payment = (await db_session.execute(
        select(Payment).where(Payment.reference == reference).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.verified_at is not None

    r = await client.post(f"/v1/payments/{reference}/verify", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200, r.text
    assert r.json() == {
        "reference": reference,
        "status": PaymentStatus.SUCCESS,
        "listing_id": listing.id,
        "listing_status": ListingStatus.PAID,
    }
    # settled payments are answered locally
    assert fake_gateway.verify_calls == [reference]

    creator = await reload(db_session, User, creator_id)
    assert creator.escrow_balance == 4950
    settled = (await db_session.execute(
        select(func.count()).select_from(LedgerEntry).where(LedgerEntry.entry_type == LedgerEntryType.PAYMENT_SETTLED)
    )).scalar_one()
    assert settled == 1

    r = await client.post(f"/v1/listings/{listing.id}/pay", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_verify_only_by_payer(client, db_session, seed_users):
    listing = await create_won_listing(db_session, seed_users)
    init = await _initiate(client, seed_users, listing.id)

    r = await client.post(f"/v1/payments/{init['reference']}/verify", headers=seed_users["creator"]["headers"])
    assert r.status_code == 403

    r = await client.post("/v1/payments/AMV_0_NOPE/verify", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_unknown_gateway_outcome_keeps_payment_initiated(client, db_session, seed_users, fake_gateway):
    listing = await create_won_listing(db_session, seed_users)
    init = await _initiate(client, seed_users, listing.id)
    url = f"/v1/payments/{init['reference']}/verify"

    fake_gateway.verify_outcome = "unknown"
    r = await client.post(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 502, r.text

    payment = (await db_session.execute(
        select(Payment).where(Payment.reference == init["reference"]).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.status == PaymentStatus.INITIATED
    assert (await reload(db_session, Listing, listing.id)).status == ListingStatus.ENDED

    # the idempotent re-check settles it later
    fake_gateway.verify_outcome = "success"
    r = await client.post(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["listing_status"] == ListingStatus.PAID


@pytest.mark.asyncio
async def test_failed_payment_is_marked_and_listing_untouched(client, db_session, seed_users, fake_gateway):
    listing = await create_won_listing(db_session, seed_users)
    init = await _initiate(client, seed_users, listing.id)
    url = f"/v1/payments/{init['reference']}/verify"

    fake_gateway.verify_outcome = "failed"
    r = await client.post(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 502, r.text

    payment = (await db_session.execute(
        select(Payment).where(Payment.reference == init["reference"]).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.status == PaymentStatus.FAILED
    assert (await reload(db_session, Listing, listing.id)).status == ListingStatus.ENDED
    assert (await reload(db_session, User, seed_users["creator"]["user_id"])).escrow_balance == 0

    r = await client.post(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 400

    # payer retries with a fresh reference
    fake_gateway.verify_outcome = "success"
    retry = await _initiate(client, seed_users, listing.id)
    assert retry["reference"] != init["reference"]
    r = await client.post(f"/v1/payments/{retry['reference']}/verify", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200, r.text


@pytest.mark.asyncio
async def test_amount_mismatch_fails_payment(client, db_session, seed_users, fake_gateway):
    listing = await create_won_listing(db_session, seed_users)
    init = await _initiate(client, seed_users, listing.id)

    fake_gateway.amount_override = 100
    r = await client.post(f"/v1/payments/{init['reference']}/verify", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 502, r.text

    payment = (await db_session.execute(
        select(Payment).where(Payment.reference == init["reference"]).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_payment_lookup_for_parties_only(client, db_session, seed_users):
    _, reference = await settle_listing(client, db_session, seed_users)

    for who in ("bidder", "creator"):
        r = await client.get(f"/v1/payments/{reference}", headers=seed_users[who]["headers"])
        assert r.status_code == 200, r.text
        assert r.json()["status"] == PaymentStatus.SUCCESS

    r = await client.get(f"/v1/payments/{reference}", headers=seed_users["rival"]["headers"])
    assert r.status_code == 403
