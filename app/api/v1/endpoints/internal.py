import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.schemas.dispute import DisputeOut, DisputeResolve
from app.schemas.internal import DispatchOut, OverviewOut, SweepOut
from app.schemas.me import UserBootstrap, UserBootstrapOut
from app.services.admin_overview import get_overview
from app.services.audit import audit
from app.services.disputes import resolve_dispute, review_dispute
from app.services.internal_admin import require_internal_admin
from app.services.outbox_dispatcher import dispatch_outbox
from app.services.sweeper import sweep
from app.services.users import bootstrap_user

log = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_internal_admin)])


@router.post("/internal/users", response_model=UserBootstrapOut, status_code=201)
async def internal_bootstrap_user(payload: UserBootstrap, db: AsyncSession = Depends(get_db)) -> UserBootstrapOut:
    user, plain_key = await bootstrap_user(db, payload)
    await db.commit()
    out = UserBootstrapOut(user_id=user.id, api_key=plain_key)
    await audit(db, actor_user_id=None, action="user.bootstrapped", target_type="user", target_id=out.user_id)
    return out


@router.get("/internal/overview", response_model=OverviewOut)
async def internal_overview(db: AsyncSession = Depends(get_db)) -> OverviewOut:
    return OverviewOut.model_validate(await get_overview(db))


@router.post("/internal/sweep", response_model=SweepOut)
async def internal_sweep(db: AsyncSession = Depends(get_db)) -> SweepOut:
    result = await sweep(db, now=utcnow())
    await db.commit()
    if result.ended_count:
        await audit(
            db,
            actor_user_id=None,
            action="listings.swept",
            target_type="listing",
            detail={"ended_count": result.ended_count, "listing_ids": result.listing_ids},
        )
    return SweepOut(ended_count=result.ended_count, listing_ids=result.listing_ids)


@router.post("/internal/outbox/dispatch", response_model=DispatchOut)
async def internal_dispatch_outbox(db: AsyncSession = Depends(get_db)) -> DispatchOut:
    count = await dispatch_outbox(db, batch_size=100)
    return DispatchOut(dispatched=count)


@router.post("/internal/disputes/{dispute_id}/review", response_model=DisputeOut)
async def internal_review_dispute(dispute_id: str, db: AsyncSession = Depends(get_db)) -> DisputeOut:
    dispute = await review_dispute(db, dispute_id=dispute_id)
    await db.commit()
    out = DisputeOut.model_validate(dispute)
    await audit(db, actor_user_id=None, action="dispute.under_review", target_type="dispute", target_id=dispute_id)
    return out


@router.post("/internal/disputes/{dispute_id}/resolve", response_model=DisputeOut)
async def internal_resolve_dispute(
    dispute_id: str,
    payload: DisputeResolve,
    db: AsyncSession = Depends(get_db),
) -> DisputeOut:
    dispute = await resolve_dispute(db, dispute_id=dispute_id, outcome=payload.outcome, note=payload.note, now=utcnow())
    await db.commit()
    out = DisputeOut.model_validate(dispute)
    await audit(
        db,
        actor_user_id=None,
        action="dispute.resolved",
        target_type="dispute",
        target_id=dispute_id,
        detail={"outcome": payload.outcome},
    )
    return out
