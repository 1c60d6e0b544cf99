from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
from decimal import Decimal
from enum import Enum

from tradevault.modules.users.schemas import UserProfileResponse
from tradevault.modules.mining.schemas import MiningInvestmentResponse
from tradevault.modules.trades.schemas import TradeResponse


# ============================================================
# Enums
# ============================================================

class ApplicationType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LOAN = "loan"
    REPAYMENT = "repayment"
    KYC = "kyc"
    TRADE = "trade"


class ApplicationFilter(str, Enum):
    ALL = "all"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LOAN = "loan"
    REPAYMENT = "repayment"
    KYC = "kyc"
    TRADE = "trade"


# ============================================================
# Applications
# ============================================================

class ApplicationItem(BaseModel):
    """One pending request, whatever table it lives in"""
    type: ApplicationType
    source: str
    id: int
    user_id: int
    username: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    status: str
    created_at: datetime
    details: Dict[str, Any] = {}


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationItem]
    total: int


class ReviewRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReviewResult(BaseModel):
    type: ApplicationType
    id: int
    success: bool
    status: Optional[str] = None
    error: Optional[str] = None


class BatchItem(BaseModel):
    type: ApplicationType
    id: int


class BatchReviewRequest(BaseModel):
    items: List[BatchItem] = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = Field(None, max_length=500)


class BatchReviewResponse(BaseModel):
    results: List[ReviewResult]
    succeeded: int
    failed: int


# ============================================================
# Users
# ============================================================

class UserListResponse(BaseModel):
    users: List[UserProfileResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class FreezeRequest(BaseModel):
    is_frozen: bool
    reason: Optional[str] = Field(None, max_length=500)


class BalanceAdjustmentRequest(BaseModel):
    """Signed change: positive credits, negative debits"""
    amount: Decimal = Field(..., decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=500)
    currency: Optional[str] = Field(None, max_length=10)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        if not v.is_finite() or v == 0:
            raise ValueError('Adjustment must be a non-zero amount')
        return v


class BalanceAdjustmentResponse(BaseModel):
    user_id: int
    currency: str
    balance: Decimal
    frozen_balance: Decimal
    transaction_id: int


# ============================================================
# Mining
# ============================================================

class MiningListResponse(BaseModel):
    investments: List[MiningInvestmentResponse]
    total: int
    page: int
    page_size: int


class MiningReviewRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


# ============================================================
# Smart Trades
# ============================================================

class TradeOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"


class TradeModeEnum(str, Enum):
    MANUAL = "manual"
    ALWAYS_WIN = "always_win"
    ALWAYS_LOSE = "always_lose"


class TradeOutcomeRequest(BaseModel):
    outcome: TradeOutcome


class TradeModeRequest(BaseModel):
    mode: TradeModeEnum


class TradeModeResponse(BaseModel):
    user_id: int
    mode: TradeModeEnum
    settled: List[TradeResponse]


class TradeSweepResponse(BaseModel):
    checked: int
    settled: int
    won: int
    lost: int


# ============================================================
# Config & Audit
# ============================================================

class SystemConfigResponse(BaseModel):
    key: str
    value: Optional[str] = None
    description: Optional[str] = None
    updated_at: datetime
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True


class SystemConfigListResponse(BaseModel):
    config: List[SystemConfigResponse]
    recharge_addresses: Dict[str, str]


class RechargeAddressUpdate(BaseModel):
    network: str = Field(..., min_length=2, max_length=30)
    address: str = Field(..., min_length=10, max_length=120)

    @field_validator('network')
    @classmethod
    def validate_network(cls, v):
        if not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError('Network may only contain letters, digits, "-" and "_"')
        return v.upper()


class AuditLogResponse(BaseModel):
    id: int
    admin_id: int
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
