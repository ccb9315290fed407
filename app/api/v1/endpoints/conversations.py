from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.db import get_db
from app.schemas.conversation import (
    ConversationOut,
    ConversationSummaryOut,
    ConversationThreadOut,
    MessageCreate,
    MessageOut,
)
from app.services.auth import Actor, get_actor
from app.services.conversations import (
    get_conversation_for_listing,
    get_thread,
    list_conversations,
    open_conversation,
    send_message,
)

router = APIRouter()


@router.post("/listings/{listing_id}/conversation", response_model=ConversationOut)
async def start_conversation(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ConversationOut:
    conversation = await open_conversation(db, actor=actor, listing_id=listing_id, now=utcnow())
    await db.commit()
    return ConversationOut.model_validate(conversation)


@router.get("/listings/{listing_id}/conversation", response_model=ConversationOut)
async def get_listing_conversation(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ConversationOut:
    return ConversationOut.model_validate(await get_conversation_for_listing(db, actor=actor, listing_id=listing_id))


@router.get("/conversations", response_model=list[ConversationSummaryOut])
async def get_conversations(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ConversationSummaryOut]:
    return [ConversationSummaryOut(**row) for row in await list_conversations(db, actor=actor)]


@router.get("/conversations/{conversation_id}", response_model=ConversationThreadOut)
async def get_conversation_thread(
    conversation_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ConversationThreadOut:
    thread = await get_thread(db, actor=actor, conversation_id=conversation_id)
    await db.commit()
    return ConversationThreadOut(
        id=thread["id"],
        listing=thread["listing"],
        other_user=thread["other_user"],
        messages=[MessageOut.model_validate(m) for m in thread["messages"]],
    )


@router.post("/conversations/{conversation_id}/messages", response_model=MessageOut, status_code=201)
async def post_message(
    conversation_id: str,
    payload: MessageCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> MessageOut:
    message = await send_message(db, actor=actor, conversation_id=conversation_id, content=payload.content, now=utcnow())
    await db.commit()
    return MessageOut.model_validate(message)
