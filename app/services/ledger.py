from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ledger_entry import LedgerEntry


def append_entry(
    db: AsyncSession,
    *,
    entry_type: str,
    user_id: str,
    amount: int,
    listing_id: str | None = None,
    payment_id: str | None = None,
    bid_id: str | None = None,
    payout_request_id: str | None = None,
) -> LedgerEntry:
    entry = LedgerEntry(
        entry_type=entry_type,
        user_id=user_id,
        amount=amount,
        listing_id=listing_id,
        payment_id=payment_id,
        bid_id=bid_id,
        payout_request_id=payout_request_id,
    )
    db.add(entry)
    return entry


async def recent_entries(
    db: AsyncSession,
    *,
    user_id: str,
    entry_types: tuple[str, ...] | None = None,
    limit: int = 20,
) -> list[LedgerEntry]:
    stmt = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
    if entry_types:
        stmt = stmt.where(LedgerEntry.entry_type.in_(entry_types))
    stmt = stmt.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())
