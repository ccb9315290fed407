from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import gen_id

from app.core.clock import utcnow
from app.models.base import Base


class Bid(Base):
    # immutable once written: no edits, no retraction
    __tablename__ = "bids"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bids_amount_positive"),
        Index("ix_bids_listing_bidder_amount", "listing_id", "bidder_id", "amount"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("bid"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    bidder_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
