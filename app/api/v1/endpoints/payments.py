from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.gateways.base import PaymentGateway
from app.gateways.registry import get_payment_gateway
from app.schemas.payment import PaymentInitOut, PaymentOut, PaymentVerifyOut
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.payments import get_payment_for_viewer, initiate_payment, verify_payment

router = APIRouter()


@router.post("/listings/{listing_id}/pay", response_model=PaymentInitOut)
async def pay(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> PaymentInitOut:
    payment = await initiate_payment(db, actor=actor, listing_id=listing_id, gateway=gateway)
    await db.commit()
    out = PaymentInitOut(
        reference=payment.reference,
        authorization_url=payment.authorization_url or "",
        amount=payment.amount,
        fee_amount=payment.fee_amount,
        net_amount=payment.net_amount,
    )
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="payment.initiated",
        target_type="payment",
        target_id=out.reference,
        detail={"listing_id": listing_id, "amount": out.amount},
    )
    return out


@router.post("/payments/{reference}/verify", response_model=PaymentVerifyOut)
async def verify(
    reference: str,
    actor: Actor = Depends(get_actor),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
) -> PaymentVerifyOut:
    outcome = await verify_payment(db, actor=actor, reference=reference, gateway=gateway, now=utcnow())
    await db.commit()

    out = PaymentVerifyOut(
        reference=outcome.payment.reference,
        status=outcome.payment.status,
        listing_id=outcome.listing.id,
        listing_status=outcome.listing.status,
    )
    await audit(
        db,
        actor_user_id=actor.user_id,
        action="payment.verified" if outcome.failure is None else "payment.failed",
        target_type="payment",
        target_id=reference,
        detail={"status": out.status},
    )
    if outcome.failure is not None:
        # FAILED is committed above; the caller still sees an error
        raise outcome.failure
    return out


@router.get("/payments/{reference}", response_model=PaymentOut)
async def get_payment(
    reference: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PaymentOut:
    payment = await get_payment_for_viewer(db, actor=actor, reference=reference)
    return PaymentOut.model_validate(payment)
