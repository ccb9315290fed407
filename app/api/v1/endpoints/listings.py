from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.schemas.listing import ListingCreate, ListingDetailOut, ListingOut, SelectWinner
from app.services import listings as listing_service
from app.services.audit import audit
from app.services.auth import Actor, get_actor, get_optional_actor
from app.services.escrow import complete_transaction

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    payload: ListingCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_service.create_listing(db, actor=actor, payload=payload, now=utcnow())
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(db, actor_user_id=actor.user_id, action="listing.created", target_type="listing", target_id=listing.id)
    return out


@router.get("/listings", response_model=list[ListingOut])
async def browse_listings(
    status: str | None = Query(default=None),
    category: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await listing_service.browse_listings(db, status=status, category=category, limit=limit, offset=offset)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/listings/{listing_id}", response_model=ListingDetailOut)
async def get_listing(
    listing_id: str,
    actor: Actor | None = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingDetailOut:
    listing = await listing_service.get_listing_or_404(db, listing_id)
    detail = await listing_service.build_listing_detail(db, listing=listing, actor=actor)
    return ListingDetailOut(**detail)


@router.post("/listings/{listing_id}/end", response_model=ListingOut)
async def end_auction(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_service.end_auction_early(db, actor=actor, listing_id=listing_id, now=utcnow())
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(db, actor_user_id=actor.user_id, action="listing.ended_early", target_type="listing", target_id=listing_id)
    return out


@router.post("/listings/{listing_id}/cancel", response_model=ListingOut)
async def cancel_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_service.cancel_listing(db, actor=actor, listing_id=listing_id, now=utcnow())
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(db, actor_user_id=actor.user_id, action="listing.cancelled", target_type="listing", target_id=listing_id)
    return out


@router.post("/listings/{listing_id}/select-winner", response_model=ListingOut)
async def select_winner(
    listing_id: str,
    payload: SelectWinner,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_service.select_winner(
        db, actor=actor, listing_id=listing_id, winner_id=payload.winner_id, now=utcnow()
    )
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="listing.winner_selected",
        target_type="listing",
        target_id=listing_id,
        detail={"winner_id": payload.winner_id, "amount": out.current_bid},
    )
    return out


@router.post("/listings/{listing_id}/deliver", response_model=ListingOut)
async def mark_delivered(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listing_service.mark_delivered(db, actor=actor, listing_id=listing_id, now=utcnow())
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(db, actor_user_id=actor.user_id, action="listing.delivered", target_type="listing", target_id=listing_id)
    return out


@router.post("/listings/{listing_id}/complete", response_model=ListingOut)
async def complete(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await complete_transaction(db, actor=actor, listing_id=listing_id, now=utcnow())
    await db.commit()
    out = ListingOut.model_validate(listing)
    await audit(db, actor_user_id=actor.user_id, action="escrow.released", target_type="listing", target_id=listing_id)
    return out
