from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.bid import Bid
from app.models.enums import ListingStatus, PaymentStatus
from app.models.listing import Listing
from app.models.payment import Payment
from app.services.auth import Actor
from app.services.listings import get_user_or_404

RECENT_LIMIT = 5


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar_one() or 0)


async def get_dashboard(db: AsyncSession, *, actor: Actor) -> dict:
    """Selling and buying summary for the caller."""
    user_id = actor.user_id
    user = await get_user_or_404(db, user_id)

    active_auctions = await _count(db, select(func.count(Listing.id)).where(
        Listing.creator_id == user_id, Listing.status == ListingStatus.ACTIVE,
    ))
    awaiting_winner = await _count(db, select(func.count(Listing.id)).where(
        Listing.creator_id == user_id, Listing.status == ListingStatus.ENDED, Listing.winner_user_id.is_(None),
    ))
    bids_placed = await _count(db, select(func.count(Bid.id)).where(Bid.bidder_id == user_id))
    vibes_won = await _count(db, select(func.count(Listing.id)).where(Listing.winner_user_id == user_id))
    # refunded payments do not count as spent
    total_spent = await _count(db, select(func.coalesce(func.sum(Payment.amount), 0)).where(
        Payment.payer_id == user_id,
        Payment.status.in_((PaymentStatus.SUCCESS, PaymentStatus.RELEASED)),
    ))

    pending = (await db.execute(
        select(Listing)
        .where(Listing.winner_user_id == user_id, Listing.status == ListingStatus.ENDED)
        .order_by(Listing.payment_due_at.asc())
    )).scalars().all()

    recent_bids = (await db.execute(
        select(Bid, Listing)
        .join(Listing, Listing.id == Bid.listing_id)
        .where(Bid.bidder_id == user_id)
        .order_by(Bid.created_at.desc(), Bid.id.desc())
        .limit(RECENT_LIMIT)
    )).all()

    recent_listings = (await db.execute(
        select(Listing)
        .where(Listing.creator_id == user_id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .limit(RECENT_LIMIT)
    )).scalars().all()

    # won, or currently holding the top bid of a live auction
    winning = sum(
        1 for bid, listing in recent_bids
        if listing.winner_user_id == user_id
        or (listing.status == ListingStatus.ACTIVE and listing.highest_bid_id == bid.id)
    )

    return {
        "stats": {
            "wallet_balance": user.wallet_balance,
            "escrow_balance": user.escrow_balance,
            "active_auctions": active_auctions,
            "awaiting_winner": awaiting_winner,
            "bids_placed": bids_placed,
            "vibes_won": vibes_won,
            "pending_payments_count": len(pending),
            "pending_payments_amount": sum(listing.current_bid for listing in pending),
            "total_spent": total_spent,
        },
        "pending_payments": [
            {"listing_id": listing.id, "title": listing.title, "amount": listing.current_bid, "payment_due_at": listing.payment_due_at}
            for listing in pending
        ],
        "winning_bids": winning,
        "recent_bids": [
            {
                "bid_id": bid.id,
                "listing_id": listing.id,
                "title": listing.title,
                "amount": bid.amount,
                "listing_status": listing.status,
                "current_bid": listing.current_bid,
                "created_at": bid.created_at,
            }
            for bid, listing in recent_bids
        ],
        "recent_listings": [
            {
                "listing_id": listing.id,
                "title": listing.title,
                "status": listing.status,
                "current_bid": listing.current_bid,
                "bid_count": listing.bid_count,
                "end_at": listing.end_at,
            }
            for listing in recent_listings
        ],
    }
