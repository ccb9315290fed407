from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidState, Unauthorized, ValidationFailure
from app.core.ids import gen_id
from app.models.bid import Bid
from app.models.enums import LedgerEntryType, ListingStatus
from app.models.listing import Listing
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.ledger import append_entry
from app.services.listings import get_listing_or_404, is_past_end

log = logging.getLogger(__name__)


def minimum_next_bid(listing: Listing) -> int:
    return listing.current_bid + listing.min_increment


def validate_bid(listing: Listing, *, bidder_id: str, amount: int, now: datetime) -> None:
    if listing.status != ListingStatus.ACTIVE:
        raise InvalidState("Auction is not active")
    if is_past_end(listing, now):
        raise InvalidState("Auction has ended")
    if bidder_id == listing.creator_id:
        raise Unauthorized("Cannot bid on your own listing")
    min_bid = minimum_next_bid(listing)
    if amount < min_bid:
        raise ValidationFailure(f"Minimum bid is {min_bid}")


async def _swap_current_bid(
    db: AsyncSession,
    *,
    listing: Listing,
    amount: int,
    bid_id: str,
) -> bool:
    """
    Compare-and-swap on current_bid: succeeds only if nobody has bid since we
    read the listing. current_bid strictly increases, so it doubles as the
    version of bid_count and highest_bid_id.
    """
    swapped = (await db.execute(
        update(Listing)
        .where(
            Listing.id == listing.id,
            Listing.status == ListingStatus.ACTIVE,
            Listing.current_bid == listing.current_bid,
        )
        .values(current_bid=amount, bid_count=listing.bid_count + 1, highest_bid_id=bid_id)
        .returning(Listing.id)
        .execution_options(synchronize_session="fetch")
    )).scalar_one_or_none()
    return swapped is not None


async def place_bid(
    db: AsyncSession,
    *,
    actor: Actor,
    listing_id: str,
    amount: int,
    now: datetime,
) -> Bid:
    """
    Accept a bid or raise. On a lost race the listing is re-read and the bid
    re-validated against the new price, up to bid_max_cas_retries times.
    The caller commits.
    """
    listing = await get_listing_or_404(db, listing_id)

    for attempt in range(1, settings.bid_max_cas_retries + 1):
        validate_bid(listing, bidder_id=actor.user_id, amount=amount, now=now)

        previous_bid_id = listing.highest_bid_id
        bid_id = gen_id("bid")
        if await _swap_current_bid(db, listing=listing, amount=amount, bid_id=bid_id):
            break

        log.warning("bid CAS lost: listing=%s attempt=%d amount=%d", listing_id, attempt, amount)
        await db.refresh(listing)
    else:
        validate_bid(listing, bidder_id=actor.user_id, amount=amount, now=now)
        raise InvalidState("Listing is receiving bids too quickly, please retry")

    previous_bidder_id = None
    if previous_bid_id:
        previous_bidder_id = (await db.execute(
            select(Bid.bidder_id).where(Bid.id == previous_bid_id)
        )).scalar_one_or_none()

    bid = Bid(id=bid_id, listing_id=listing_id, bidder_id=actor.user_id, amount=amount, created_at=now)
    db.add(bid)
    await db.flush()

    append_entry(
        db,
        entry_type=LedgerEntryType.BID_PLACED,
        user_id=actor.user_id,
        amount=amount,
        listing_id=listing_id,
        bid_id=bid.id,
    )
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="bid.placed",
        payload={
            "listing_id": listing_id,
            "title": listing.title,
            "creator_id": listing.creator_id,
            "bid_id": bid.id,
            "bidder_id": actor.user_id,
            "amount": amount,
            "previous_bidder_id": previous_bidder_id,
        },
    )
    log.info("bid accepted: listing=%s bidder=%s amount=%d", listing_id, actor.user_id, amount)
    return bid
