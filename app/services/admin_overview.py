from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.models.bid import Bid
from app.models.enums import ListingStatus, PaymentStatus
from app.models.listing import Listing
from app.models.payment import Payment
from app.models.user import User

RECENT_LIMIT = 50

# money the platform has actually taken in; RELEASED is a settled payment paid out to the creator
SETTLED_PAYMENT_STATUSES = (PaymentStatus.SUCCESS, PaymentStatus.RELEASED)


async def _scalar(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar_one() or 0)


async def get_overview(db: AsyncSession) -> dict:
    """
    Platform-wide counters plus the most recent users, listings and audit
    entries. Read-only; served to internal operators.
    """
    payments = (await db.execute(
        select(
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
            func.coalesce(func.sum(Payment.fee_amount), 0),
        ).where(Payment.status.in_(SETTLED_PAYMENT_STATUSES))
    )).one()

    stats = {
        "total_users": await _scalar(db, select(func.count(User.id))),
        "total_listings": await _scalar(db, select(func.count(Listing.id))),
        "active_listings": await _scalar(
            db, select(func.count(Listing.id)).where(Listing.status == ListingStatus.ACTIVE)
        ),
        "total_bids": await _scalar(db, select(func.count(Bid.id))),
        "total_payments": int(payments[0]),
        "total_revenue": int(payments[1]),
        "platform_fees": int(payments[2]),
    }

    listings_per_user = (
        select(Listing.creator_id.label("user_id"), func.count(Listing.id).label("n"))
        .group_by(Listing.creator_id)
        .subquery()
    )
    bids_per_user = (
        select(Bid.bidder_id.label("user_id"), func.count(Bid.id).label("n"))
        .group_by(Bid.bidder_id)
        .subquery()
    )
    users = (await db.execute(
        select(User, func.coalesce(listings_per_user.c.n, 0), func.coalesce(bids_per_user.c.n, 0))
        .outerjoin(listings_per_user, listings_per_user.c.user_id == User.id)
        .outerjoin(bids_per_user, bids_per_user.c.user_id == User.id)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(RECENT_LIMIT)
    )).all()

    listings = (await db.execute(
        select(Listing, User)
        .join(User, User.id == Listing.creator_id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .limit(RECENT_LIMIT)
    )).all()

    activity = (await db.execute(
        select(AuditLog, User)
        .outerjoin(User, User.id == AuditLog.actor_user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(RECENT_LIMIT)
    )).all()

    return {
        "stats": stats,
        "users": [
            {
                "id": user.id,
                "display_name": user.display_name,
                "email": user.email,
                "created_at": user.created_at,
                "listing_count": int(listing_count),
                "bid_count": int(bid_count),
            }
            for user, listing_count, bid_count in users
        ],
        "listings": [
            {
                "id": listing.id,
                "title": listing.title,
                "status": listing.status,
                "current_bid": listing.current_bid,
                "bid_count": listing.bid_count,
                "created_at": listing.created_at,
                "creator": {"display_name": creator.display_name, "email": creator.email},
            }
            for listing, creator in listings
        ],
        "activity": [
            {
                "id": entry.id,
                "action": entry.action,
                "actor_user_id": entry.actor_user_id,
                "actor": {"display_name": actor.display_name, "email": actor.email} if actor else None,
                "target_type": entry.target_type,
                "target_id": entry.target_id,
                "detail": entry.detail,
                "created_at": entry.created_at,
            }
            for entry, actor in activity
        ],
    }
