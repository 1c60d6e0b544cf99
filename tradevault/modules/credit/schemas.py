from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class CreditRuleEnum(str, Enum):
    WITHDRAW_LIMIT = "withdraw_limit"
    TRADE_LIMIT = "trade_limit"
    OVERDUE_LOAN = "overdue_loan"
    RESTORE = "restore"


class CreditScoreLogResponse(BaseModel):
    id: int
    previous_score: int
    new_score: int
    change_amount: int
    rule: CreditRuleEnum
    reason: str
    loan_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CreditScoreResponse(BaseModel):
    """Current score with the most recent changes"""
    credit_score: int
    can_withdraw: bool
    logs: List[CreditScoreLogResponse]


class TradeCheckResponse(BaseModel):
    allowed: bool = True
    attempts_in_window: int


class CreditRestoreRequest(BaseModel):
    points: int = Field(..., gt=0, le=1000)
    reason: str = Field(..., min_length=3, max_length=500)
