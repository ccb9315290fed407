from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ListingCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=20, max_length=2000)
    category: str | None = Field(default=None, max_length=60)
    media_url: str | None = Field(default=None, max_length=500)
    weirdness: int = Field(default=5, ge=1, le=10)
    starting_bid: int = Field(ge=100)
    min_increment: int = Field(default=100, ge=50)
    duration_hours: int = Field(default=24, ge=1, le=168)  # 1 hour to 7 days


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    creator_id: str
    title: str
    description: str
    category: str | None
    media_url: str | None
    weirdness: int
    starting_bid: int
    min_increment: int
    current_bid: int
    bid_count: int
    highest_bid_id: str | None
    status: str
    end_at: datetime
    winner_user_id: str | None
    selected_at: datetime | None
    payment_due_at: datetime | None
    delivered_at: datetime | None
    completed_at: datetime | None
    escrow_released_at: datetime | None
    cancelled_at: datetime | None


class PartyOut(BaseModel):
    id: str
    display_name: str
    average_rating: float
    # only present once contacts are unlocked
    email: str | None = None
    phone: str | None = None
    instagram: str | None = None
    twitter: str | None = None


class ListingDetailOut(ListingOut):
    creator: PartyOut
    winner: PartyOut | None = None

    can_bid: bool = False
    can_select_winner: bool = False
    can_pay: bool = False
    contacts_unlocked: bool = False


class SelectWinner(BaseModel):
    winner_id: str = Field(min_length=1)
