import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.core.errors import Conflict
from app.schemas.wallet import BankDetailsIn, BankDetailsOut, PayoutRequestOut, WalletOut, WithdrawIn
from app.services.audit import audit
from app.services.auth import Actor, get_actor
from app.services.idempotency import (
    find_idempotent_response,
    require_idempotency_key,
    store_idempotency_response,
)
from app.services.wallet import bank_details_view, get_wallet, save_bank_details, withdraw

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/wallet", response_model=WalletOut)
async def wallet(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> WalletOut:
    return WalletOut(**await get_wallet(db, actor=actor))


@router.put("/wallet/bank", response_model=BankDetailsOut)
async def put_bank_details(
    payload: BankDetailsIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> BankDetailsOut:
    user = await save_bank_details(
        db,
        actor=actor,
        bank_name=payload.bank_name,
        account_number=payload.account_number,
        account_name=payload.account_name,
    )
    await db.commit()
    out = BankDetailsOut(**bank_details_view(user))
    await audit(db, actor_user_id=actor.user_id, action="wallet.bank_details_updated", target_type="user", target_id=actor.user_id)
    return out


@router.post("/wallet/withdraw", response_model=PayoutRequestOut, status_code=201)
async def post_withdraw(
    payload: WithdrawIn,
    request: Request,
    actor: Actor = Depends(get_actor),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> PayoutRequestOut:
    body = payload.model_dump()
    path = str(request.url.path)

    stored = await find_idempotent_response(
        db=db, actor=actor, idempotency_key=idempotency_key, request_path=path, request_body=body
    )
    if stored is not None:
        # Safe retry: return stored response
        return PayoutRequestOut(**stored)

    payout, user = await withdraw(db, actor=actor, amount=payload.amount, now=utcnow())
    resp = PayoutRequestOut(
        id=payout.id,
        amount=payout.amount,
        status=payout.status,
        bank_name=payout.bank_name,
        account_number=payout.account_number_masked,
        account_name=payout.account_name,
        created_at=payout.created_at,
        wallet_balance=user.wallet_balance,
    )
    store_idempotency_response(
        db=db,
        actor=actor,
        idempotency_key=idempotency_key,
        request_path=path,
        request_body=body,
        response=resp.model_dump(mode="json"),
    )

    try:
        await db.commit()
    except IntegrityError:
        # a concurrent request with the same key won; nothing of ours was kept
        await db.rollback()
        log.warning("withdraw: idempotency key race user=%s key=%s", actor.user_id, idempotency_key)
        stored = await find_idempotent_response(
            db=db, actor=actor, idempotency_key=idempotency_key, request_path=path, request_body=body
        )
        if stored is None:
            raise Conflict("Concurrent withdrawal, please retry")
        return PayoutRequestOut(**stored)

    await audit(
        db,
        actor_user_id=actor.user_id,
        action="wallet.withdraw_requested",
        target_type="payout_request",
        target_id=resp.id,
        detail={"amount": resp.amount},
    )
    return resp
