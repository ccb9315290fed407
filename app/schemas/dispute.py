from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DisputeCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)


class DisputeResolve(BaseModel):
    outcome: Literal["release", "refund"]
    note: str | None = Field(default=None, max_length=2000)


class DisputeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    created_by_id: str
    against_id: str
    reason: str
    description: str
    status: str
    resolution: str | None
    resolution_note: str | None
    created_at: datetime
    resolved_at: datetime | None
