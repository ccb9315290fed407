from datetime import datetime

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import gen_id

from app.core.clock import utcnow
from app.models.base import Base
from app.models.enums import DisputeStatus


class Dispute(Base):
    __tablename__ = "disputes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("dsp"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    created_by_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    against_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # OPEN -> UNDER_REVIEW -> RESOLVED
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=DisputeStatus.OPEN)
    resolution: Mapped[str | None] = mapped_column(String(30), nullable=True)  # release | refund
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
