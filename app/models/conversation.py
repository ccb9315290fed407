from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id

from app.models.base import AuditMixin, Base


class Conversation(AuditMixin, Base):
    """Private thread between the creator and the selected winner of one listing."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("cnv"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, unique=True)
    creator_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    winner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
