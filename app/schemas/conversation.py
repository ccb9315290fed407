from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.listing import PartyOut


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    creator_id: str
    winner_id: str
    created_at: datetime
    updated_at: datetime


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    read: bool
    created_at: datetime


class LastMessageOut(BaseModel):
    content: str
    created_at: datetime
    is_from_me: bool


class ConversationSummaryOut(BaseModel):
    id: str
    listing_id: str
    listing_title: str
    listing_status: str
    other_user: PartyOut
    last_message: LastMessageOut | None = None
    unread_count: int = 0
    updated_at: datetime


class ListingRefOut(BaseModel):
    id: str
    title: str
    status: str


class ConversationThreadOut(BaseModel):
    id: str
    listing: ListingRefOut
    other_user: PartyOut
    messages: list[MessageOut]
