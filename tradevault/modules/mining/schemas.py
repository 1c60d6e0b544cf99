from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum


class MiningStatusEnum(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    SETTLED = "settled"


class MiningTierResponse(BaseModel):
    tier: int
    lock_days: int
    daily_rate: Decimal
    min_amount: Decimal
    label: str

    class Config:
        from_attributes = True


class MiningTiersResponse(BaseModel):
    tiers: List[MiningTierResponse]
    min_total_deposits: Decimal
    total_deposits: Decimal
    is_eligible: bool


class MiningApplicationRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    tier: int = Field(..., ge=1, le=3)


class MiningInvestmentResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    tier: int
    daily_rate: Decimal
    lock_days: int
    status: MiningStatusEnum
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    total_earnings: Decimal
    admin_note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MiningInvestmentDetail(BaseModel):
    investment: MiningInvestmentResponse
    accrued_earnings: Decimal
    matured: bool


class MiningOverviewResponse(BaseModel):
    investments: List[MiningInvestmentDetail]
    total_locked: Decimal
    pending_earnings: Decimal
