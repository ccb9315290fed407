from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.dispute import DisputeCreate, DisputeOut
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.disputes import list_disputes, open_dispute

router = APIRouter()


@router.post("/listings/{listing_id}/disputes", response_model=DisputeOut, status_code=201)
async def create_dispute(
    listing_id: str,
    payload: DisputeCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> DisputeOut:
    dispute = await open_dispute(
        db, actor=actor, listing_id=listing_id, reason=payload.reason, description=payload.description
    )
    await db.commit()
    out = DisputeOut.model_validate(dispute)
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="dispute.opened",
        target_type="listing",
        target_id=listing_id,
        detail={"dispute_id": out.id, "reason": out.reason},
    )
    return out


@router.get("/listings/{listing_id}/disputes", response_model=list[DisputeOut])
async def get_disputes(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[DisputeOut]:
    rows = await list_disputes(db, actor=actor, listing_id=listing_id)
    return [DisputeOut.model_validate(r) for r in rows]
