from datetime import datetime

from pydantic import BaseModel, Field


class UserBootstrap(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    display_name: str = Field(min_length=2, max_length=200)
    phone: str | None = None
    instagram: str | None = None
    twitter: str | None = None


class UserBootstrapOut(BaseModel):
    user_id: str
    api_key: str


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(default=None, min_length=2, max_length=200)
    bio: str | None = Field(default=None, max_length=500)
    phone: str | None = None
    instagram: str | None = None
    twitter: str | None = None


class MeOut(BaseModel):
    id: str
    email: str
    display_name: str
    bio: str | None
    phone: str | None
    instagram: str | None
    twitter: str | None
    wallet_balance: int
    escrow_balance: int
    total_earnings: int
    total_sales: int
    average_rating: float
    total_reviews: int


class DashboardStatsOut(BaseModel):
    wallet_balance: int
    escrow_balance: int
    active_auctions: int
    awaiting_winner: int
    bids_placed: int
    vibes_won: int
    pending_payments_count: int
    pending_payments_amount: int
    total_spent: int


class PendingPaymentOut(BaseModel):
    listing_id: str
    title: str
    amount: int
    payment_due_at: datetime | None


class RecentBidOut(BaseModel):
    bid_id: str
    listing_id: str
    title: str
    amount: int
    listing_status: str
    current_bid: int
    created_at: datetime


class RecentListingOut(BaseModel):
    listing_id: str
    title: str
    status: str
    current_bid: int
    bid_count: int
    end_at: datetime


class DashboardOut(BaseModel):
    stats: DashboardStatsOut
    pending_payments: list[PendingPaymentOut]
    winning_bids: int
    recent_bids: list[RecentBidOut]
    recent_listings: list[RecentListingOut]
