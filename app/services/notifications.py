"""
Outbox events -> per-user notifications.

Builders are pure: they read only the event payload, so the worker can
replay an event without touching listing state.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification
from app.models.outbox import OutboxEvent
from app.services.auth import Actor

log = logging.getLogger(__name__)


def _money(amount: int | None) -> str:
    return f"NGN {amount or 0:,}"


def _link(payload: dict[str, Any]) -> str | None:
    listing_id = payload.get("listing_id")
    return f"/vibes/{listing_id}" if listing_id else None


def _note(recipient_id: str | None, kind: str, title: str, message: str, payload: dict[str, Any]) -> dict | None:
    if not recipient_id:
        return None
    return {"recipient_id": recipient_id, "kind": kind, "title": title, "message": message, "link": _link(payload)}


def _on_bid_placed(p: dict[str, Any]) -> list[dict | None]:
    notes = [
        _note(p.get("creator_id"), "bid_received", "New bid", f"{_money(p.get('amount'))} on \"{p.get('title')}\"", p),
    ]
    prev = p.get("previous_bidder_id")
    if prev and prev != p.get("bidder_id"):
        notes.append(_note(prev, "outbid", "You've been outbid", f"Someone bid {_money(p.get('amount'))} on \"{p.get('title')}\"", p))
    return notes


def _on_listing_ended(p: dict[str, Any]) -> list[dict | None]:
    return [_note(p.get("creator_id"), "auction_ended", "Auction ended", f"\"{p.get('title')}\" has ended. Pick a winner.", p)]


def _on_winner_selected(p: dict[str, Any]) -> list[dict | None]:
    return [
        _note(
            p.get("winner_user_id"), "winner_selected", "You won!",
            f"You won \"{p.get('title')}\" for {_money(p.get('winning_bid'))}. Complete payment to unlock contacts.", p,
        )
    ]


def _on_payment_settled(p: dict[str, Any]) -> list[dict | None]:
    return [
        _note(
            p.get("creator_id"), "payment_settled", "Payment received",
            f"{_money(p.get('net_amount'))} is held in escrow for \"{p.get('title')}\"", p,
        )
    ]


def _on_delivered(p: dict[str, Any]) -> list[dict | None]:
    return [
        _note(p.get("winner_user_id"), "delivered", "Marked as delivered",
              f"\"{p.get('title')}\" was delivered. Confirm to release payment.", p)
    ]


def _on_completed(p: dict[str, Any]) -> list[dict | None]:
    return [
        _note(p.get("creator_id"), "completed", "Funds released",
              f"{_money(p.get('net_amount'))} for \"{p.get('title')}\" is now in your wallet", p)
    ]


def _on_dispute_opened(p: dict[str, Any]) -> list[dict | None]:
    return [
        _note(p.get("against_id"), "dispute_opened", "Dispute opened",
              f"A dispute was opened on \"{p.get('title')}\": {p.get('reason')}", p)
    ]


def _on_dispute_resolved(p: dict[str, Any]) -> list[dict | None]:
    message = f"The dispute on \"{p.get('title')}\" was resolved ({p.get('resolution')})"
    return [
        _note(p.get("created_by_id"), "dispute_resolved", "Dispute resolved", message, p),
        _note(p.get("against_id"), "dispute_resolved", "Dispute resolved", message, p),
    ]


def _on_message_sent(p: dict[str, Any]) -> list[dict | None]:
    return [_note(p.get("receiver_id"), "message", "New message", f"New message about \"{p.get('title')}\"", p)]


BUILDERS: dict[str, Callable[[dict[str, Any]], list[dict | None]]] = {
    "bid.placed": _on_bid_placed,
    "listing.ended": _on_listing_ended,
    "listing.winner_selected": _on_winner_selected,
    "payment.settled": _on_payment_settled,
    "listing.delivered": _on_delivered,
    "listing.completed": _on_completed,
    "dispute.opened": _on_dispute_opened,
    "dispute.resolved": _on_dispute_resolved,
    "message.sent": _on_message_sent,
}


def build_notifications(event_type: str, payload: dict[str, Any], *, source_event_id: str | None = None) -> list[Notification]:
    builder = BUILDERS.get(event_type)
    if builder is None:
        return []
    return [
        Notification(**note, source_event_id=source_event_id, read=False)
        for note in builder(payload)
        if note is not None
    ]


async def apply_outbox_event(db: AsyncSession, ev: OutboxEvent) -> int:
    """Write the notifications for one event; skipped if this event already produced some."""
    seen = (await db.execute(
        select(Notification.id).where(Notification.source_event_id == ev.id).limit(1)
    )).scalar_one_or_none()
    if seen is not None:
        return 0

    notes = build_notifications(ev.event_type, ev.payload or {}, source_event_id=ev.id)
    db.add_all(notes)
    await db.flush()
    if notes:
        log.info("notifications: %d for %s (%s)", len(notes), ev.event_type, ev.id)
    return len(notes)


async def list_notifications(db: AsyncSession, *, actor: Actor, limit: int = 20) -> tuple[list[Notification], int]:
    rows = (await db.execute(
        select(Notification)
        .where(Notification.recipient_id == actor.user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )).scalars().all()
    unread = (await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == actor.user_id,
            Notification.read.is_(False),
        )
    )).scalar_one()
    return list(rows), int(unread)


async def mark_all_read(db: AsyncSession, *, actor: Actor) -> None:
    await db.execute(
        update(Notification)
        .where(Notification.recipient_id == actor.user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
