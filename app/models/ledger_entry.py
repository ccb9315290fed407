from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import gen_id

from app.core.clock import utcnow
from app.models.base import Base


class LedgerEntry(Base):
    """Append-only balance-affecting fact. Rows are never updated."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("ldg"))

    # see LedgerEntryType
    entry_type: Mapped[str] = mapped_column(String(40), nullable=False)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    listing_id: Mapped[str | None] = mapped_column(String, ForeignKey("listings.id"), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String, ForeignKey("payments.id"), nullable=True)
    bid_id: Mapped[str | None] = mapped_column(String, ForeignKey("bids.id"), nullable=True)
    payout_request_id: Mapped[str | None] = mapped_column(String, ForeignKey("payout_requests.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
