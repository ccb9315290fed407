from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.me import DashboardOut, MeOut, ProfileUpdate
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.dashboard import get_dashboard
from app.services.listings import get_user_or_404
from app.services.users import update_profile

router = APIRouter()


def _me_out(user: User) -> MeOut:
    return MeOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        bio=user.bio,
        phone=user.phone,
        instagram=user.instagram,
        twitter=user.twitter,
        wallet_balance=user.wallet_balance,
        escrow_balance=user.escrow_balance,
        total_earnings=user.total_earnings,
        total_sales=user.total_sales,
        average_rating=user.average_rating,
        total_reviews=user.total_reviews,
    )


@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> MeOut:
    return _me_out(await get_user_or_404(db, actor.user_id))


@router.patch("/me", response_model=MeOut)
async def patch_me(
    payload: ProfileUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> MeOut:
    user = await update_profile(db, actor=actor, payload=payload)
    await db.commit()
    out = _me_out(user)
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="profile.updated",
        target_type="user",
        target_id=actor.user_id,
        detail={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return out


@router.get("/me/dashboard", response_model=DashboardOut)
async def dashboard(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> DashboardOut:
    return DashboardOut(**await get_dashboard(db, actor=actor))
