from sqlalchemy import CheckConstraint, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id

from app.models.base import Base, AuditMixin


class User(AuditMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
        CheckConstraint("escrow_balance >= 0", name="ck_users_escrow_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("usr"))

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    # contact details, unlocked to the counterparty after payment
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    instagram: Mapped[str | None] = mapped_column(String(120), nullable=True)
    twitter: Mapped[str | None] = mapped_column(String(120), nullable=True)

    payout_bank_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    payout_account_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payout_account_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # available for withdrawal
    wallet_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # settled payments waiting for delivery confirmation
    escrow_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
