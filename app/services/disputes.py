from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidState, NotFound, Unauthorized
from app.models.dispute import Dispute
from app.models.enums import DisputeStatus, LedgerEntryType, ListingStatus, PaymentStatus
from app.models.listing import Listing
from app.services.auth import Actor
from app.services.escrow import release_escrow
from app.services.events import emit_event
from app.services.ledger import append_entry
from app.services.listing_state import assert_transition
from app.services.listings import get_listing_or_404, get_user_or_404
from app.services.payments import settled_payment_for_listing

log = logging.getLogger(__name__)

UNRESOLVED = (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)


def _is_party(listing: Listing, user_id: str) -> bool:
    return user_id in (listing.creator_id, listing.winner_user_id)


def _dispute_payload(dispute: Dispute, listing: Listing) -> dict:
    return {
        "dispute_id": dispute.id,
        "listing_id": listing.id,
        "title": listing.title,
        "created_by_id": dispute.created_by_id,
        "against_id": dispute.against_id,
        "reason": dispute.reason,
        "status": dispute.status,
        "resolution": dispute.resolution,
    }


async def get_dispute_or_404(db: AsyncSession, dispute_id: str, *, for_update: bool = False) -> Dispute:
    stmt = select(Dispute).where(Dispute.id == dispute_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    dispute = (await db.execute(stmt)).scalar_one_or_none()
    if not dispute:
        raise NotFound("Dispute not found")
    return dispute


async def open_dispute(
    db: AsyncSession,
    *,
    actor: Actor,
    listing_id: str,
    reason: str,
    description: str,
) -> Dispute:
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if not _is_party(listing, actor.user_id):
        raise Unauthorized("Only the creator or the winner can open a dispute")
    if listing.status not in (ListingStatus.PAID, ListingStatus.IN_PROGRESS):
        raise InvalidState("Cannot dispute in current state")

    existing_id = (await db.execute(
        select(Dispute.id).where(Dispute.listing_id == listing.id, Dispute.status.in_(UNRESOLVED)).limit(1)
    )).scalar_one_or_none()
    if existing_id is not None:
        raise InvalidState("A dispute is already open for this listing")

    against_id = listing.winner_user_id if actor.user_id == listing.creator_id else listing.creator_id
    dispute = Dispute(
        listing_id=listing.id,
        created_by_id=actor.user_id,
        against_id=against_id,
        reason=reason,
        description=description,
        status=DisputeStatus.OPEN,
    )
    db.add(dispute)

    assert_transition(listing.status, ListingStatus.DISPUTED)
    listing.status = ListingStatus.DISPUTED
    await db.flush()

    emit_event(
        db,
        aggregate_type="dispute",
        aggregate_id=dispute.id,
        event_type="dispute.opened",
        payload=_dispute_payload(dispute, listing),
    )
    log.info("dispute opened: listing=%s by=%s against=%s", listing.id, actor.user_id, against_id)
    return dispute


async def list_disputes(db: AsyncSession, *, actor: Actor, listing_id: str) -> list[Dispute]:
    listing = await get_listing_or_404(db, listing_id)
    if not _is_party(listing, actor.user_id):
        raise Unauthorized("Only the creator or the winner can view disputes")
    stmt = select(Dispute).where(Dispute.listing_id == listing.id).order_by(Dispute.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def review_dispute(db: AsyncSession, *, dispute_id: str) -> Dispute:
    dispute = await get_dispute_or_404(db, dispute_id, for_update=True)
    if dispute.status != DisputeStatus.OPEN:
        raise InvalidState("Only open disputes can be taken under review")
    dispute.status = DisputeStatus.UNDER_REVIEW
    await db.flush()
    return dispute


async def resolve_dispute(
    db: AsyncSession,
    *,
    dispute_id: str,
    outcome: str,
    note: str | None,
    now: datetime,
) -> Dispute:
    """
    Internal admin decision. `release` pays the creator as a normal
    completion would; `refund` returns the payment to the payer and cancels
    the listing.
    """
    dispute = await get_dispute_or_404(db, dispute_id)
    listing = await get_listing_or_404(db, dispute.listing_id, for_update=True)
    dispute = await get_dispute_or_404(db, dispute_id, for_update=True)

    if dispute.status not in UNRESOLVED:
        raise InvalidState("Dispute already resolved")
    if listing.status != ListingStatus.DISPUTED:
        raise InvalidState("Listing is not disputed")

    payment = await settled_payment_for_listing(db, listing.id, for_update=True)
    if not payment:
        raise InvalidState("No settled payment found")

    if outcome == "release":
        await release_escrow(db, listing=listing, payment=payment, now=now)
    elif outcome == "refund":
        creator = await get_user_or_404(db, listing.creator_id, for_update=True)
        if creator.escrow_balance < payment.net_amount:
            raise InvalidState("Escrow balance does not cover this payment")

        assert_transition(listing.status, ListingStatus.CANCELLED)
        listing.status = ListingStatus.CANCELLED
        listing.cancelled_at = now
        payment.status = PaymentStatus.REFUNDED
        payment.refunded_at = now
        creator.escrow_balance = creator.escrow_balance - payment.net_amount

        append_entry(
            db,
            entry_type=LedgerEntryType.PAYMENT_REFUNDED,
            user_id=payment.payer_id,
            amount=payment.amount,
            listing_id=listing.id,
            payment_id=payment.id,
        )
    else:
        raise InvalidState(f"Unknown dispute outcome: {outcome}")

    dispute.status = DisputeStatus.RESOLVED
    dispute.resolution = outcome
    dispute.resolution_note = note
    dispute.resolved_at = now
    await db.flush()

    emit_event(
        db,
        aggregate_type="dispute",
        aggregate_id=dispute.id,
        event_type="dispute.resolved",
        payload=_dispute_payload(dispute, listing),
    )
    log.info("dispute resolved: %s listing=%s outcome=%s", dispute.id, listing.id, outcome)
    return dispute
