from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidState, NotFound, Unauthorized, ValidationFailure
from app.models.conversation import Conversation
from app.models.listing import Listing
from app.models.message import Message
from app.models.user import User
from app.services.auth import Actor
from app.services.events import emit_event
from app.services.listings import get_listing_or_404
from app.services.redaction import party_view

log = logging.getLogger(__name__)


def _other_party(conversation: Conversation, user_id: str) -> str:
    return conversation.winner_id if user_id == conversation.creator_id else conversation.creator_id


def _ensure_participant(conversation: Conversation, actor: Actor) -> None:
    if actor.user_id not in (conversation.creator_id, conversation.winner_id):
        raise Unauthorized("Not a participant in this conversation")


async def _get_conversation_or_404(db: AsyncSession, conversation_id: str) -> Conversation:
    conversation = await db.get(Conversation, conversation_id)
    if not conversation:
        raise NotFound("Conversation not found")
    return conversation


async def open_conversation(db: AsyncSession, *, actor: Actor, listing_id: str, now: datetime) -> Conversation:
    """
    Get or create the thread for a listing. Only the creator and the selected
    winner may open it, and only after a winner exists. A new thread starts
    with a system greeting from the creator.
    """
    listing = await get_listing_or_404(db, listing_id, for_update=True)

    if actor.user_id not in (listing.creator_id, listing.winner_user_id):
        raise Unauthorized("Only the creator or winner can start a conversation")
    if listing.winner_user_id is None:
        raise InvalidState("No winner selected yet")

    existing = (await db.execute(
        select(Conversation).where(Conversation.listing_id == listing.id)
    )).scalar_one_or_none()
    if existing is not None:
        return existing

    conversation = Conversation(
        listing_id=listing.id,
        creator_id=listing.creator_id,
        winner_id=listing.winner_user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(conversation)
    await db.flush()

    db.add(Message(
        conversation_id=conversation.id,
        sender_id=listing.creator_id,
        receiver_id=listing.winner_user_id,
        content=f"Conversation started for \"{listing.title}\". You can now discuss the details of the service.",
        created_at=now,
    ))
    await db.flush()

    log.info("conversation opened: listing=%s conversation=%s", listing.id, conversation.id)
    return conversation


async def get_conversation_for_listing(db: AsyncSession, *, actor: Actor, listing_id: str) -> Conversation:
    conversation = (await db.execute(
        select(Conversation).where(Conversation.listing_id == listing_id)
    )).scalar_one_or_none()
    if not conversation:
        raise NotFound("No conversation found")
    _ensure_participant(conversation, actor)
    return conversation


async def list_conversations(db: AsyncSession, *, actor: Actor) -> list[dict]:
    """The caller's threads, most recently active first, each with its last message and unread count."""
    conversations = (await db.execute(
        select(Conversation)
        .where(or_(Conversation.creator_id == actor.user_id, Conversation.winner_id == actor.user_id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
    )).scalars().all()
    if not conversations:
        return []

    ids = [c.id for c in conversations]
    unread = dict((await db.execute(
        select(Message.conversation_id, func.count(Message.id))
        .where(Message.conversation_id.in_(ids), Message.receiver_id == actor.user_id, Message.read.is_(False))
        .group_by(Message.conversation_id)
    )).all())

    out = []
    for conversation in conversations:
        listing = await db.get(Listing, conversation.listing_id)
        other = await db.get(User, _other_party(conversation, actor.user_id))
        last = (await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )).scalar_one_or_none()
        out.append({
            "id": conversation.id,
            "listing_id": conversation.listing_id,
            "listing_title": listing.title,
            "listing_status": listing.status,
            "other_user": party_view(other, include_contacts=False),
            "last_message": {
                "content": last.content,
                "created_at": last.created_at,
                "is_from_me": last.sender_id == actor.user_id,
            } if last else None,
            "unread_count": int(unread.get(conversation.id, 0)),
            "updated_at": conversation.updated_at,
        })
    return out


async def get_thread(db: AsyncSession, *, actor: Actor, conversation_id: str) -> dict:
    """Full message history, oldest first. Messages addressed to the caller are marked read."""
    conversation = await _get_conversation_or_404(db, conversation_id)
    _ensure_participant(conversation, actor)

    await db.execute(
        update(Message)
        .where(
            and_(
                Message.conversation_id == conversation.id,
                Message.receiver_id == actor.user_id,
                Message.read.is_(False),
            )
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )

    listing = await db.get(Listing, conversation.listing_id)
    other = await db.get(User, _other_party(conversation, actor.user_id))
    messages = (await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .execution_options(populate_existing=True)
    )).scalars().all()

    return {
        "id": conversation.id,
        "listing": {"id": listing.id, "title": listing.title, "status": listing.status},
        "other_user": party_view(other, include_contacts=False),
        "messages": list(messages),
    }


async def send_message(
    db: AsyncSession,
    *,
    actor: Actor,
    conversation_id: str,
    content: str,
    now: datetime,
) -> Message:
    text = content.strip()
    if not text:
        raise ValidationFailure("Message cannot be empty")

    conversation = await _get_conversation_or_404(db, conversation_id)
    _ensure_participant(conversation, actor)

    receiver_id = _other_party(conversation, actor.user_id)
    message = Message(
        conversation_id=conversation.id,
        sender_id=actor.user_id,
        receiver_id=receiver_id,
        content=text,
        created_at=now,
    )
    db.add(message)
    conversation.updated_at = now
    await db.flush()

    listing = await db.get(Listing, conversation.listing_id)
    emit_event(
        db,
        aggregate_type="conversation",
        aggregate_id=conversation.id,
        event_type="message.sent",
        payload={
            "listing_id": conversation.listing_id,
            "title": listing.title,
            "conversation_id": conversation.id,
            "message_id": message.id,
            "sender_id": actor.user_id,
            "receiver_id": receiver_id,
        },
    )
    return message
