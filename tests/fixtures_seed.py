from datetime import timedelta

import pytest_asyncio
from sqlalchemy import select

from app.core.clock import utcnow
from app.core.security import generate_api_key
from app.models.api_key import ApiKey
from app.models.bid import Bid
from app.models.enums import ListingStatus
from app.models.listing import Listing
from app.models.user import User


async def create_user(db, *, email: str, display_name: str, **fields) -> dict:
    user = User(email=email, display_name=display_name, **fields)
    db.add(user)
    await db.flush()

    key = generate_api_key()
    db.add(ApiKey(user_id=user.id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True))
    await db.commit()
    return {"user_id": user.id, "api_key": key.plain, "headers": {"X-API-Key": key.plain}}


async def create_listing(db, *, creator_id: str, **overrides) -> Listing:
    starting_bid = overrides.pop("starting_bid", 5000)
    values = {
        "title": "Serenade your cat in Yoruba",
        "description": "A live, fully costumed serenade for one (1) cat of your choosing.",
        "category": "music",
        "weirdness": 8,
        "starting_bid": starting_bid,
        "min_increment": 500,
        "current_bid": starting_bid,
        "bid_count": 0,
        "status": ListingStatus.ACTIVE,
        "end_at": utcnow() + timedelta(hours=24),
    }
    values.update(overrides)
    listing = Listing(creator_id=creator_id, **values)
    db.add(listing)
    await db.commit()
    return listing


async def reload(db, model, obj_id):
    """Read the committed row, bypassing the session's identity map."""
    stmt = select(model).where(model.id == obj_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


async def bids_for(db, listing_id: str) -> list[Bid]:
    return list((await db.execute(select(Bid).where(Bid.listing_id == listing_id))).scalars().all())


@pytest_asyncio.fixture
async def seed_users(db_session):
    creator = await create_user(db_session, email="creator@test.com", display_name="Creator", phone="+2348000000001")
    bidder = await create_user(db_session, email="bidder@test.com", display_name="Bidder", phone="+2348000000002")
    rival = await create_user(db_session, email="rival@test.com", display_name="Rival")
    return {"creator": creator, "bidder": bidder, "rival": rival}


@pytest_asyncio.fixture
async def active_listing(db_session, seed_users):
    return await create_listing(db_session, creator_id=seed_users["creator"]["user_id"])


async def create_won_listing(db, users, *, amount: int = 5500) -> Listing:
    """ENDED listing whose winner (the bidder) bid `amount`."""
    creator_id = users["creator"]["user_id"]
    bidder_id = users["bidder"]["user_id"]
    listing = await create_listing(
        db,
        creator_id=creator_id,
        status=ListingStatus.ENDED,
        end_at=utcnow() - timedelta(hours=1),
    )
    bid = Bid(listing_id=listing.id, bidder_id=bidder_id, amount=amount)
    db.add(bid)
    await db.flush()
    listing.current_bid = amount
    listing.bid_count = 1
    listing.highest_bid_id = bid.id
    listing.winner_user_id = bidder_id
    listing.selected_at = utcnow()
    await db.commit()
    return listing


async def settle_listing(client, db, users, *, amount: int = 5500) -> tuple[Listing, str]:
    """Won listing paid and verified through the API; returns (listing, reference)."""
    listing = await create_won_listing(db, users, amount=amount)
    headers = users["bidder"]["headers"]

    r = await client.post(f"/v1/listings/{listing.id}/pay", headers=headers)
    assert r.status_code == 200, r.text
    reference = r.json()["reference"]

    r = await client.post(f"/v1/payments/{reference}/verify", headers=headers)
    assert r.status_code == 200, r.text
    return listing, reference
