from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import gen_id

from app.models.base import Base, AuditMixin
from app.models.enums import ListingStatus


class Listing(AuditMixin, Base):
    """A service offered as a time-boxed auction (a "vibe")."""

    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("current_bid >= starting_bid", name="ck_listings_current_bid_floor"),
        CheckConstraint("weirdness BETWEEN 1 AND 10", name="ck_listings_weirdness_range"),
        Index("ix_listings_status_end_at", "status", "end_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))
    creator_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(60), nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    weirdness: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    # whole currency units
    starting_bid: Mapped[int] = mapped_column(Integer, nullable=False)
    min_increment: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    current_bid: Mapped[int] = mapped_column(Integer, nullable=False)

    bid_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # plain column (no FK) to avoid a listings <-> bids cycle
    highest_bid_id: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default=ListingStatus.ACTIVE)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    winner_user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True, index=True)
    selected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escrow_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
