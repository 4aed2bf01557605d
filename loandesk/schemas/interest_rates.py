from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InterestRateCreate(BaseModel):
    months: int = Field(ge=1, le=60)
    rate: Decimal = Field(ge=0, le=100)


class InterestRateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    months: int
    rate: Decimal
    is_active: bool
    admin_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class InterestRateListResponse(BaseModel):
    items: list[InterestRateOut]
    total: int
