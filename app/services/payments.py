from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ExternalFailure, InvalidState, NotFound, Unauthorized
from app.core.ids import gen_payment_reference
from app.gateways.base import PaymentGateway, to_minor_units
from app.models.enums import LedgerEntryType, ListingStatus, PaymentStatus
from app.models.listing import Listing
from app.models.payment import Payment
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.ledger import append_entry
from app.services.listing_state import assert_transition
from app.services.listings import get_listing_or_404, get_user_or_404

log = logging.getLogger(__name__)

# statuses reached only through a successful verification
SETTLED_STATUSES = frozenset({PaymentStatus.SUCCESS, PaymentStatus.RELEASED, PaymentStatus.REFUNDED})


def compute_fee(amount: int, fee_percent: int | None = None) -> tuple[int, int]:
    """(fee_amount, net_amount), fee rounded half up to a whole unit."""
    pct = settings.platform_fee_percent if fee_percent is None else fee_percent
    fee = (amount * pct + 50) // 100
    return fee, amount - fee


@dataclass(frozen=True)
class VerifyOutcome:
    payment: Payment
    listing: Listing
    # set when the gateway reported a failure; the FAILED mark must be committed before raising
    failure: ExternalFailure | None = None


async def get_payment_by_reference(db: AsyncSession, reference: str, *, for_update: bool = False) -> Payment:
    stmt = select(Payment).where(Payment.reference == reference)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    payment = (await db.execute(stmt)).scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found")
    return payment


async def settled_payment_for_listing(db: AsyncSession, listing_id: str, *, for_update: bool = False) -> Payment | None:
    stmt = select(Payment).where(Payment.listing_id == listing_id, Payment.status == PaymentStatus.SUCCESS)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none()


async def initiate_payment(
    db: AsyncSession,
    *,
    actor: Actor,
    listing_id: str,
    gateway: PaymentGateway,
) -> Payment:
    listing = await get_listing_or_404(db, listing_id)

    if listing.winner_user_id != actor.user_id:
        raise Unauthorized("Only the selected winner can pay")
    if listing.status in (ListingStatus.PAID, ListingStatus.IN_PROGRESS, ListingStatus.COMPLETED):
        raise InvalidState("Already paid")
    if listing.status != ListingStatus.ENDED:
        raise InvalidState("Listing is not awaiting payment")

    existing = (await db.execute(
        select(Payment).where(
            Payment.listing_id == listing.id,
            Payment.payer_id == actor.user_id,
            Payment.status == PaymentStatus.INITIATED,
        ).order_by(Payment.created_at.desc()).limit(1)
    )).scalar_one_or_none()
    if existing and existing.amount == listing.current_bid:
        return existing

    payer = await get_user_or_404(db, actor.user_id)
    amount = listing.current_bid
    fee, net = compute_fee(amount)
    reference = gen_payment_reference()

    # nothing is written until the gateway accepts the reference
    res = await gateway.initialize(
        email=payer.email,
        amount_minor=to_minor_units(amount),
        reference=reference,
        callback_url=f"{settings.app_url.rstrip('/')}/pay/callback",
        metadata={"listing_id": listing.id, "payer_id": payer.id, "title": listing.title},
    )
    if not res.ok:
        log.warning("payment initialize failed: listing=%s code=%s", listing.id, res.error_code)
        raise ExternalFailure(res.error_message or "Failed to initialize payment")

    payment = Payment(
        listing_id=listing.id,
        payer_id=payer.id,
        amount=amount,
        fee_amount=fee,
        net_amount=net,
        reference=reference,
        authorization_url=res.redirect_url,
        status=PaymentStatus.INITIATED,
    )
    db.add(payment)
    await db.flush()

    log.info("payment initiated: listing=%s reference=%s amount=%d", listing.id, reference, amount)
    return payment


async def verify_payment(
    db: AsyncSession,
    *,
    actor: Actor,
    reference: str,
    gateway: PaymentGateway,
    now: datetime,
) -> VerifyOutcome:
    """
    Ask the gateway for the truth about `reference` and settle on success.

    Idempotent: a settled payment is returned without calling the gateway.
    An unknown outcome (timeout / transport error) raises ExternalFailure and
    leaves the payment INITIATED. A definite failure marks it FAILED and is
    reported through VerifyOutcome.failure so the caller can commit first.
    """
    payment = await get_payment_by_reference(db, reference)

    if payment.payer_id != actor.user_id:
        raise Unauthorized("Only the payer can verify this payment")
    if payment.status in SETTLED_STATUSES:
        return VerifyOutcome(payment=payment, listing=await get_listing_or_404(db, payment.listing_id))
    if payment.status == PaymentStatus.FAILED:
        raise InvalidState("Payment failed, start a new payment")

    res = await gateway.verify(reference=reference)

    if res.outcome == "unknown":
        log.warning("payment verify outcome unknown: reference=%s", reference)
        raise ExternalFailure(res.error_message or "Payment gateway did not answer, retry verification")

    # lock order: listing, payment, user (same as escrow release)
    listing = await get_listing_or_404(db, payment.listing_id, for_update=True)
    payment = await get_payment_by_reference(db, reference, for_update=True)
    if payment.status in SETTLED_STATUSES:
        # a concurrent verify settled it while we waited on the gateway
        return VerifyOutcome(payment=payment, listing=listing)
    if payment.status != PaymentStatus.INITIATED:
        raise InvalidState("Payment failed, start a new payment")

    expected_minor = to_minor_units(payment.amount)
    if res.outcome == "success" and res.amount_minor is not None and res.amount_minor != expected_minor:
        log.warning(
            "payment amount mismatch: reference=%s expected=%d got=%d", reference, expected_minor, res.amount_minor
        )
        payment.status = PaymentStatus.FAILED
        await db.flush()
        return VerifyOutcome(payment=payment, listing=listing, failure=ExternalFailure("Paid amount does not match"))

    if res.outcome != "success":
        log.warning("payment failed: reference=%s code=%s", reference, res.error_code)
        payment.status = PaymentStatus.FAILED
        await db.flush()
        return VerifyOutcome(
            payment=payment,
            listing=listing,
            failure=ExternalFailure(res.error_message or "Payment was not successful"),
        )

    if listing.status != ListingStatus.ENDED:
        log.warning("payment settled for listing=%s in status %s", listing.id, listing.status)
        raise InvalidState("Listing is no longer awaiting payment")

    await _settle(db, listing=listing, payment=payment, now=now)
    return VerifyOutcome(payment=payment, listing=listing)


async def _settle(db: AsyncSession, *, listing: Listing, payment: Payment, now: datetime) -> None:
    creator = await get_user_or_404(db, listing.creator_id, for_update=True)

    assert_transition(listing.status, ListingStatus.PAID)
    payment.status = PaymentStatus.SUCCESS
    payment.verified_at = now
    listing.status = ListingStatus.PAID
    # held until the winner confirms delivery
    creator.escrow_balance = creator.escrow_balance + payment.net_amount

    append_entry(
        db,
        entry_type=LedgerEntryType.PAYMENT_SETTLED,
        user_id=creator.id,
        amount=payment.net_amount,
        listing_id=listing.id,
        payment_id=payment.id,
    )
    emit_event(
        db,
        aggregate_type="payment",
        aggregate_id=payment.id,
        event_type="payment.settled",
        payload={
            "payment_id": payment.id,
            "reference": payment.reference,
            "listing_id": listing.id,
            "title": listing.title,
            "creator_id": listing.creator_id,
            "payer_id": payment.payer_id,
            "amount": payment.amount,
            "net_amount": payment.net_amount,
        },
    )
    await db.flush()
    log.info("payment settled: reference=%s listing=%s net=%d", payment.reference, listing.id, payment.net_amount)


async def get_payment_for_viewer(db: AsyncSession, *, actor: Actor, reference: str) -> Payment:
    payment = await get_payment_by_reference(db, reference)
    if payment.payer_id == actor.user_id:
        return payment
    listing = await get_listing_or_404(db, payment.listing_id)
    if listing.creator_id != actor.user_id:
        raise Unauthorized("Not a party to this payment")
    return payment
