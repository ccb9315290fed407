import pytest

from fixtures_seed import create_won_listing


@pytest.mark.asyncio
async def test_dashboard_summarises_both_sides(client, db_session, seed_users, active_listing):
    won = await create_won_listing(db_session, seed_users, amount=5500)

    r = await client.post(
        f"/v1/listings/{active_listing.id}/bids", headers=seed_users["rival"]["headers"], json={"amount": 5500}
    )
    assert r.status_code == 201, r.text

    r = await client.get("/v1/me/dashboard", headers=seed_users["creator"]["headers"])
    assert r.status_code == 200, r.text
    creator = r.json()
    assert creator["stats"]["active_auctions"] == 1
    assert creator["stats"]["awaiting_winner"] == 0
    assert {row["listing_id"] for row in creator["recent_listings"]} == {won.id, active_listing.id}

    r = await client.get("/v1/me/dashboard", headers=seed_users["bidder"]["headers"])
    bidder = r.json()
    assert bidder["stats"]["vibes_won"] == 1
    assert bidder["stats"]["pending_payments_count"] == 1
    assert bidder["stats"]["pending_payments_amount"] == 5500
    assert bidder["pending_payments"][0]["listing_id"] == won.id
    assert bidder["winning_bids"] == 1
    assert bidder["stats"]["total_spent"] == 0

    r = await client.get("/v1/me/dashboard", headers=seed_users["rival"]["headers"])
    rival = r.json()
    assert rival["stats"]["bids_placed"] == 1
    assert rival["winning_bids"] == 1
    assert rival["recent_bids"][0]["listing_id"] == active_listing.id


@pytest.mark.asyncio
async def test_dashboard_requires_api_key(client):
    r = await client.get("/v1/me/dashboard")
    assert r.status_code == 401
