from datetime import datetime

from pydantic import BaseModel


class SweepOut(BaseModel):
    ended_count: int
    listing_ids: list[str]


class DispatchOut(BaseModel):
    dispatched: int


class OverviewStatsOut(BaseModel):
    total_users: int
    total_listings: int
    active_listings: int
    total_bids: int
    total_payments: int
    total_revenue: int
    platform_fees: int


class OverviewUserOut(BaseModel):
    id: str
    display_name: str
    email: str
    created_at: datetime
    listing_count: int
    bid_count: int


class OverviewPersonOut(BaseModel):
    display_name: str
    email: str


class OverviewListingOut(BaseModel):
    id: str
    title: str
    status: str
    current_bid: int
    bid_count: int
    created_at: datetime
    creator: OverviewPersonOut


class OverviewActivityOut(BaseModel):
    id: str
    action: str
    actor_user_id: str | None
    actor: OverviewPersonOut | None
    target_type: str | None
    target_id: str | None
    detail: dict
    created_at: datetime


class OverviewOut(BaseModel):
    stats: OverviewStatsOut
    users: list[OverviewUserOut]
    listings: list[OverviewListingOut]
    activity: list[OverviewActivityOut]
