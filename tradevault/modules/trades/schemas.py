from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum


class TradeDirectionEnum(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatusEnum(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class OutcomeSourceEnum(str, Enum):
    TIMER = "timer"
    MODE = "mode"
    ADMIN = "admin"


class TradeOption(BaseModel):
    duration_minutes: int
    profit_rate: Decimal


class TradeOptionsResponse(BaseModel):
    options: List[TradeOption]


class TradeRequest(BaseModel):
    symbol: str = Field(..., min_length=2, max_length=20)
    direction: TradeDirectionEnum
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    duration_minutes: int = Field(..., ge=1)
    entry_price: Decimal = Field(..., gt=0)

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v):
        if not v.isalnum():
            raise ValueError('Symbol may only contain letters and digits')
        return v.upper()


class TradeResponse(BaseModel):
    id: int
    user_id: int
    transaction_id: Optional[int] = None
    symbol: str
    direction: TradeDirectionEnum
    amount: Decimal
    currency: str
    entry_price: Decimal
    duration_minutes: int
    profit_rate: Decimal
    status: TradeStatusEnum
    outcome_source: Optional[OutcomeSourceEnum] = None
    profit: Decimal
    payout: Decimal
    settle_at: datetime
    settled_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TradeListResponse(BaseModel):
    trades: List[TradeResponse]
    total: int
    page: int
    page_size: int
