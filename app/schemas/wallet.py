from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.ledger import LedgerEntryOut


class BankDetailsIn(BaseModel):
    bank_name: str = Field(min_length=1, max_length=120)
    account_number: str
    account_name: str = Field(min_length=1, max_length=200)

    @field_validator("account_number")
    @classmethod
    def _ten_digits(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 10 or not v.isdigit():
            raise ValueError("Account number must be 10 digits")
        return v


class BankDetailsOut(BaseModel):
    bank_name: str | None
    account_number: str | None  # masked
    account_name: str | None


class WithdrawIn(BaseModel):
    amount: int = Field(ge=1)


class PayoutRequestOut(BaseModel):
    id: str
    amount: int
    status: str
    bank_name: str
    account_number: str
    account_name: str
    created_at: datetime | None = None
    wallet_balance: int


class WalletOut(BaseModel):
    balance: int
    escrow_balance: int
    total_earnings: int
    total_sales: int
    pending_payouts: int
    bank_details: BankDetailsOut
    recent_transactions: list[LedgerEntryOut]
