from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum


class TransactionTypeEnum(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_REPAYMENT = "loan_repayment"
    MINING_LOCK = "mining_lock"
    MINING_SETTLEMENT = "mining_settlement"
    ADJUSTMENT = "adjustment"
    TRADE = "trade"


class TransactionStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssetResponse(BaseModel):
    currency: str
    balance: Decimal
    frozen_balance: Decimal

    class Config:
        from_attributes = True


class WalletResponse(BaseModel):
    assets: List[AssetResponse]


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    address: str = Field(..., min_length=10, max_length=120)
    network: str = Field("TRC20", max_length=30)
    currency: str = "USDT"


class TransactionResponse(BaseModel):
    id: int
    reference_code: str
    type: TransactionTypeEnum
    status: TransactionStatusEnum
    amount: Decimal
    currency: str
    fee: Decimal
    network: Optional[str] = None
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    receipt_url: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
    total: int
    page: int
    page_size: int


class RechargeAddress(BaseModel):
    network: str
    address: str
