from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BidCreate(BaseModel):
    amount: int = Field(ge=1)


class BidOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    bidder_id: str
    amount: int
    created_at: datetime
