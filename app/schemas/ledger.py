"""
Read-side shape of ledger entries: one variant per entry_type so clients never
parse free-form metadata.
"""
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class _EntryBase(BaseModel):
    id: str
    user_id: str
    amount: int
    created_at: datetime


class BidPlacedEntry(_EntryBase):
    entry_type: Literal["bid_placed"]
    listing_id: str
    bid_id: str


class PaymentSettledEntry(_EntryBase):
    entry_type: Literal["payment_settled"]
    listing_id: str
    payment_id: str


class FundsReleasedEntry(_EntryBase):
    entry_type: Literal["funds_released"]
    listing_id: str
    payment_id: str


class PaymentRefundedEntry(_EntryBase):
    entry_type: Literal["payment_refunded"]
    listing_id: str
    payment_id: str


class PayoutRequestedEntry(_EntryBase):
    entry_type: Literal["payout_requested"]
    payout_request_id: str


LedgerEntryOut = Annotated[
    Union[BidPlacedEntry, PaymentSettledEntry, FundsReleasedEntry, PaymentRefundedEntry, PayoutRequestedEntry],
    Field(discriminator="entry_type"),
]

ledger_entry_adapter: TypeAdapter[LedgerEntryOut] = TypeAdapter(LedgerEntryOut)
