from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidState, Unauthorized
from app.models.enums import LedgerEntryType, ListingStatus, PaymentStatus
from app.models.listing import Listing
from app.models.payment import Payment
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.ledger import append_entry
from app.services.listing_state import assert_transition
from app.services.listings import get_listing_or_404, get_user_or_404, listing_event_payload
from app.services.payments import settled_payment_for_listing

log = logging.getLogger(__name__)


async def release_escrow(db: AsyncSession, *, listing: Listing, payment: Payment, now: datetime) -> None:
    """
    Move a settled payment's net amount from the creator's escrow into their
    wallet and close the listing. Listing and payment must already be locked.
    """
    creator = await get_user_or_404(db, listing.creator_id, for_update=True)
    if creator.escrow_balance < payment.net_amount:
        log.error(
            "escrow short: user=%s escrow=%d net=%d listing=%s",
            creator.id, creator.escrow_balance, payment.net_amount, listing.id,
        )
        raise InvalidState("Escrow balance does not cover this payment")

    assert_transition(listing.status, ListingStatus.COMPLETED)
    listing.status = ListingStatus.COMPLETED
    listing.completed_at = now
    listing.escrow_released_at = now

    payment.status = PaymentStatus.RELEASED
    payment.escrow_released_at = now

    creator.escrow_balance = creator.escrow_balance - payment.net_amount
    creator.wallet_balance = creator.wallet_balance + payment.net_amount
    creator.total_sales = creator.total_sales + 1
    creator.total_earnings = creator.total_earnings + payment.net_amount

    append_entry(
        db,
        entry_type=LedgerEntryType.FUNDS_RELEASED,
        user_id=creator.id,
        amount=payment.net_amount,
        listing_id=listing.id,
        payment_id=payment.id,
    )
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.completed",
        payload=listing_event_payload(listing, payment_id=payment.id, net_amount=payment.net_amount),
    )
    await db.flush()
    log.info("escrow released: listing=%s creator=%s net=%d", listing.id, creator.id, payment.net_amount)


async def complete_transaction(db: AsyncSession, *, actor: Actor, listing_id: str, now: datetime) -> Listing:
    """Winner confirms delivery. Succeeds exactly once per listing."""
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if listing.winner_user_id != actor.user_id:
        raise Unauthorized("Only the winner can complete this transaction")
    if listing.delivered_at is None:
        raise InvalidState("Creator has not marked this as delivered")
    if listing.status not in (ListingStatus.PAID, ListingStatus.IN_PROGRESS):
        raise InvalidState("Listing cannot be completed in its current state")

    payment = await settled_payment_for_listing(db, listing.id, for_update=True)
    if not payment:
        raise InvalidState("No settled payment found")

    await release_escrow(db, listing=listing, payment=payment, now=now)
    return listing
