from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.schemas.bid import BidCreate, BidOut
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.bids import place_bid
from app.services.listings import list_bids
from app.services.rate_limit import SlidingWindowRateLimiter, enforce_bid_rate_limit, get_bid_rate_limiter

router = APIRouter()


@router.post("/listings/{listing_id}/bids", response_model=BidOut, status_code=201)
async def create_bid(
    listing_id: str,
    payload: BidCreate,
    actor: Actor = Depends(get_actor),
    limiter: SlidingWindowRateLimiter = Depends(get_bid_rate_limiter),
    db: AsyncSession = Depends(get_db),
) -> BidOut:
    # every attempt counts, accepted or not
    await enforce_bid_rate_limit(limiter, actor.user_id)

    bid = await place_bid(db, actor=actor, listing_id=listing_id, amount=payload.amount, now=utcnow())
    await db.commit()
    out = BidOut.model_validate(bid)
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="bid.placed",
        target_type="listing",
        target_id=listing_id,
        detail={"bid_id": out.id, "amount": out.amount},
    )
    return out


@router.get("/listings/{listing_id}/bids", response_model=list[BidOut])
async def get_bids(
    listing_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> list[BidOut]:
    rows = await list_bids(db, listing_id=listing_id, limit=limit)
    return [BidOut.model_validate(r) for r in rows]
