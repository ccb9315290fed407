from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.core.config import settings
from app.core.errors import InvalidState, NotFound, Unauthorized
from app.models.bid import Bid
from app.models.enums import ListingStatus
from app.models.listing import Listing
from app.models.user import User
from app.schemas.listing import ListingCreate
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.listing_state import CONTACT_UNLOCKED_STATUSES, assert_transition
from app.services.redaction import party_view

log = logging.getLogger(__name__)


async def get_listing_or_404(db: AsyncSession, listing_id: str, *, for_update: bool = False) -> Listing:
    """
    Load a listing. With for_update the row is locked for the rest of the
    transaction and the in-session copy is refreshed from the database.
    """
    stmt = select(Listing).where(Listing.id == listing_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if not listing:
        raise NotFound("Listing not found")
    return listing


async def get_user_or_404(db: AsyncSession, user_id: str, *, for_update: bool = False) -> User:
    stmt = select(User).where(User.id == user_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


def listing_event_payload(listing: Listing, **extra) -> dict:
    return {
        "listing_id": listing.id,
        "title": listing.title,
        "creator_id": listing.creator_id,
        "winner_user_id": listing.winner_user_id,
        "status": listing.status,
        **extra,
    }


async def create_listing(db: AsyncSession, *, actor: Actor, payload: ListingCreate, now: datetime) -> Listing:
    await get_user_or_404(db, actor.user_id)

    listing = Listing(
        creator_id=actor.user_id,
        title=payload.title,
        description=payload.description,
        category=payload.category or None,
        media_url=payload.media_url or None,
        weirdness=payload.weirdness,
        starting_bid=payload.starting_bid,
        min_increment=payload.min_increment,
        current_bid=payload.starting_bid,
        bid_count=0,
        status=ListingStatus.ACTIVE,
        end_at=now + timedelta(hours=payload.duration_hours),
    )
    db.add(listing)
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.created",
        payload=listing_event_payload(listing),
    )
    log.info("listing created: %s by %s", listing.id, actor.user_id)
    return listing


async def browse_listings(
    db: AsyncSession,
    *,
    status: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Listing]:
    stmt = select(Listing)
    if status:
        stmt = stmt.where(Listing.status == status.upper())
    if category:
        stmt = stmt.where(func.lower(Listing.category) == category.lower())
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id.desc()).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def build_listing_detail(db: AsyncSession, *, listing: Listing, actor: Actor | None) -> dict:
    viewer_id = actor.user_id if actor else None
    is_creator = viewer_id is not None and viewer_id == listing.creator_id
    is_winner = viewer_id is not None and viewer_id == listing.winner_user_id
    unlocked = listing.status in CONTACT_UNLOCKED_STATUSES and (is_creator or is_winner)

    creator = await get_user_or_404(db, listing.creator_id)
    winner = await db.get(User, listing.winner_user_id) if listing.winner_user_id else None

    return {
        **{c.key: getattr(listing, c.key) for c in Listing.__table__.columns if c.key not in ("created_at", "updated_at")},
        "creator": party_view(creator, include_contacts=unlocked),
        "winner": party_view(winner, include_contacts=unlocked) if winner else None,
        "can_bid": viewer_id is not None and listing.status == ListingStatus.ACTIVE and not is_creator,
        "can_select_winner": is_creator and listing.status == ListingStatus.ENDED and listing.winner_user_id is None,
        "can_pay": is_winner and listing.status == ListingStatus.ENDED,
        "contacts_unlocked": unlocked,
    }


async def list_bids(db: AsyncSession, *, listing_id: str, limit: int = 50) -> list[Bid]:
    await get_listing_or_404(db, listing_id)
    stmt = (
        select(Bid)
        .where(Bid.listing_id == listing_id)
        .order_by(Bid.created_at.desc(), Bid.amount.desc())
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())


async def end_auction_early(db: AsyncSession, *, actor: Actor, listing_id: str, now: datetime) -> Listing:
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if listing.creator_id != actor.user_id:
        raise Unauthorized("Only the creator can end this auction")
    if listing.status != ListingStatus.ACTIVE:
        raise InvalidState("Auction is not active")
    if listing.bid_count == 0:
        raise InvalidState("Cannot end auction with no bids")

    assert_transition(listing.status, ListingStatus.ENDED)
    listing.status = ListingStatus.ENDED
    listing.end_at = now
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.ended",
        payload=listing_event_payload(listing, early=True),
    )
    log.info("listing ended early: %s", listing.id)
    return listing


async def cancel_listing(db: AsyncSession, *, actor: Actor, listing_id: str, now: datetime) -> Listing:
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if listing.creator_id != actor.user_id:
        raise Unauthorized("Only the creator can cancel this auction")
    if listing.status != ListingStatus.ACTIVE:
        raise InvalidState("Only active auctions can be cancelled")
    if listing.bid_count > 0:
        raise InvalidState("Cannot cancel an auction that has bids")

    assert_transition(listing.status, ListingStatus.CANCELLED)
    listing.status = ListingStatus.CANCELLED
    listing.cancelled_at = now
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.cancelled",
        payload=listing_event_payload(listing),
    )
    return listing


async def select_winner(
    db: AsyncSession,
    *,
    actor: Actor,
    listing_id: str,
    winner_id: str,
    now: datetime,
) -> Listing:
    """
    One-time, irreversible. The winner must have bid on the listing; the
    listing price is re-synced to the winner's highest bid.
    """
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    # checked first so a repeat attempt is InvalidState for every caller
    if listing.winner_user_id is not None:
        raise InvalidState("Winner already selected")
    if listing.creator_id != actor.user_id:
        raise Unauthorized("Only the creator can select a winner")
    if listing.status != ListingStatus.ENDED:
        raise InvalidState("Auction has not ended")

    bid = (await db.execute(
        select(Bid)
        .where(Bid.listing_id == listing.id, Bid.bidder_id == winner_id)
        .order_by(Bid.amount.desc())
        .limit(1)
    )).scalar_one_or_none()
    if not bid:
        raise NotFound("Selected user has not bid on this listing")

    listing.winner_user_id = winner_id
    listing.current_bid = bid.amount
    listing.highest_bid_id = bid.id
    listing.selected_at = now
    listing.payment_due_at = now + timedelta(hours=settings.payment_due_hours)
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.winner_selected",
        payload=listing_event_payload(listing, winning_bid=bid.amount, winning_bid_id=bid.id),
    )
    log.info("winner selected: listing=%s winner=%s amount=%d", listing.id, winner_id, bid.amount)
    return listing


async def mark_delivered(db: AsyncSession, *, actor: Actor, listing_id: str, now: datetime) -> Listing:
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if listing.creator_id != actor.user_id:
        raise Unauthorized("Only the creator can mark as delivered")
    if listing.status not in (ListingStatus.PAID, ListingStatus.IN_PROGRESS):
        raise InvalidState("Listing is not in a deliverable state")

    # re-entry from IN_PROGRESS is allowed and moves the delivery time
    assert_transition(listing.status, ListingStatus.IN_PROGRESS)
    listing.status = ListingStatus.IN_PROGRESS
    listing.delivered_at = now
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.delivered",
        payload=listing_event_payload(listing),
    )
    return listing


async def end_expired_listings(db: AsyncSession, *, now: datetime, batch_size: int = 500) -> list[str]:
    """ACTIVE listings past end_at -> ENDED. Used by the sweeper."""
    ids = (await db.execute(
        select(Listing.id)
        .where(Listing.status == ListingStatus.ACTIVE, Listing.end_at < now)
        .order_by(Listing.end_at.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )).scalars().all()
    if not ids:
        return []

    # status guard keeps a concurrent early-end / cancel from being overwritten
    ended = (await db.execute(
        update(Listing)
        .where(Listing.id.in_(ids), Listing.status == ListingStatus.ACTIVE)
        .values(status=ListingStatus.ENDED)
        .returning(Listing.id)
        .execution_options(synchronize_session="fetch")
    )).scalars().all()
    if len(ended) != len(ids):
        log.warning("sweep: %d of %d listings changed under us", len(ids) - len(ended), len(ids))
    return list(ended)


def is_past_end(listing: Listing, now: datetime) -> bool:
    return now > as_utc(listing.end_at)
