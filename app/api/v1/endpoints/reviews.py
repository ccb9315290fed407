from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.review import ReviewCreate, ReviewOut
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.reviews import create_review, list_reviews

router = APIRouter()


@router.post("/listings/{listing_id}/reviews", response_model=ReviewOut, status_code=201)
async def post_review(
    listing_id: str,
    payload: ReviewCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReviewOut:
    review = await create_review(db, actor=actor, listing_id=listing_id, rating=payload.rating, comment=payload.comment)
    await db.commit()
    out = ReviewOut.model_validate(review)
    await audit(db, actor_user_id=actor.user_id, action="review.created", target_type="listing", target_id=listing_id)
    return out


@router.get("/listings/{listing_id}/reviews", response_model=list[ReviewOut])
async def get_reviews(listing_id: str, db: AsyncSession = Depends(get_db)) -> list[ReviewOut]:
    return [ReviewOut.model_validate(r) for r in await list_reviews(db, listing_id=listing_id)]
