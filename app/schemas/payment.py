from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PaymentInitOut(BaseModel):
    reference: str
    authorization_url: str
    amount: int
    fee_amount: int
    net_amount: int


class PaymentVerifyOut(BaseModel):
    reference: str
    status: str
    listing_id: str
    listing_status: str


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    payer_id: str
    reference: str
    amount: int
    fee_amount: int
    net_amount: int
    status: str
    created_at: datetime
    verified_at: datetime | None
    escrow_released_at: datetime | None
