from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidState, Unauthorized
from app.models.enums import ListingStatus
from app.models.review import Review
from app.services.auth import Actor
from app.services.listings import get_listing_or_404, get_user_or_404

log = logging.getLogger(__name__)


async def create_review(
    db: AsyncSession,
    *,
    actor: Actor,
    listing_id: str,
    rating: int,
    comment: str | None,
) -> Review:
    listing = await get_listing_or_404(db, listing_id)

    if actor.user_id not in (listing.creator_id, listing.winner_user_id):
        raise Unauthorized("Only the creator or the winner can leave a review")
    if listing.status != ListingStatus.COMPLETED:
        raise InvalidState("Reviews open once the transaction is completed")

    already = (await db.execute(
        select(Review.id).where(Review.listing_id == listing.id, Review.reviewer_id == actor.user_id)
    )).scalar_one_or_none()
    if already is not None:
        raise InvalidState("You already reviewed this listing")

    reviewee_id = listing.winner_user_id if actor.user_id == listing.creator_id else listing.creator_id
    review = Review(
        listing_id=listing.id,
        reviewer_id=actor.user_id,
        reviewee_id=reviewee_id,
        rating=rating,
        comment=comment or None,
    )
    db.add(review)
    await db.flush()

    reviewee = await get_user_or_404(db, reviewee_id, for_update=True)
    avg, count = (await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.reviewee_id == reviewee_id)
    )).one()
    reviewee.average_rating = round(float(avg or 0), 2)
    reviewee.total_reviews = int(count)
    await db.flush()

    log.info("review created: listing=%s reviewer=%s rating=%d", listing.id, actor.user_id, rating)
    return review


async def list_reviews(db: AsyncSession, *, listing_id: str) -> list[Review]:
    await get_listing_or_404(db, listing_id)
    stmt = select(Review).where(Review.listing_id == listing_id).order_by(Review.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())
