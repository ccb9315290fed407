from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidState, ValidationFailure
from app.models.enums import LedgerEntryType, PayoutStatus
from app.models.payout_request import PayoutRequest
from app.models.user import User
from app.schemas.ledger import ledger_entry_adapter
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.ledger import append_entry, recent_entries
from app.services.listings import get_user_or_404
from app.services.redaction import mask_account_number

log = logging.getLogger(__name__)


def _has_bank_details(user: User) -> bool:
    return bool(user.payout_bank_name and user.payout_account_number and user.payout_account_name)


def bank_details_view(user: User) -> dict:
    return {
        "bank_name": user.payout_bank_name,
        "account_number": mask_account_number(user.payout_account_number),
        "account_name": user.payout_account_name,
    }


async def get_wallet(db: AsyncSession, *, actor: Actor) -> dict:
    user = await get_user_or_404(db, actor.user_id)

    pending = (await db.execute(
        select(func.coalesce(func.sum(PayoutRequest.amount), 0)).where(
            PayoutRequest.user_id == user.id,
            PayoutRequest.status == PayoutStatus.PENDING,
        )
    )).scalar_one()

    entries = await recent_entries(db, user_id=user.id, limit=20)
    return {
        "balance": user.wallet_balance,
        "escrow_balance": user.escrow_balance,
        "total_earnings": user.total_earnings,
        "total_sales": user.total_sales,
        "pending_payouts": int(pending),
        "bank_details": bank_details_view(user),
        "recent_transactions": [
            ledger_entry_adapter.validate_python(
                {c.key: getattr(e, c.key) for c in e.__table__.columns}
            )
            for e in entries
        ],
    }


async def save_bank_details(
    db: AsyncSession,
    *,
    actor: Actor,
    bank_name: str,
    account_number: str,
    account_name: str,
) -> User:
    user = await get_user_or_404(db, actor.user_id, for_update=True)
    user.payout_bank_name = bank_name.strip()
    user.payout_account_number = account_number.strip()
    user.payout_account_name = account_name.strip()
    await db.flush()
    return user


async def withdraw(db: AsyncSession, *, actor: Actor, amount: int, now: datetime) -> tuple[PayoutRequest, User]:
    """
    Reserve `amount` from the wallet and record a PENDING payout. The bank
    transfer itself happens outside this system.
    """
    if amount < settings.min_withdrawal_amount:
        raise ValidationFailure(f"Minimum withdrawal is {settings.min_withdrawal_amount}")

    # row lock serializes concurrent withdrawals against the balance check
    user = await get_user_or_404(db, actor.user_id, for_update=True)
    if not _has_bank_details(user):
        raise InvalidState("Please add your bank details first")
    if user.wallet_balance < amount:
        raise InvalidState("Insufficient balance")

    user.wallet_balance = user.wallet_balance - amount
    payout = PayoutRequest(
        user_id=user.id,
        amount=amount,
        status=PayoutStatus.PENDING,
        bank_name=user.payout_bank_name,
        account_number_masked=mask_account_number(user.payout_account_number),
        account_name=user.payout_account_name,
        created_at=now,
    )
    db.add(payout)
    await db.flush()

    append_entry(
        db,
        entry_type=LedgerEntryType.PAYOUT_REQUESTED,
        user_id=user.id,
        amount=amount,
        payout_request_id=payout.id,
    )
    emit_event(
        db,
        aggregate_type="payout",
        aggregate_id=payout.id,
        event_type="payout.requested",
        payload={"payout_request_id": payout.id, "user_id": user.id, "amount": amount},
    )
    log.info("payout requested: user=%s amount=%d remaining=%d", user.id, amount, user.wallet_balance)
    return payout, user
