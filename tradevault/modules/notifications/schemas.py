from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from enum import Enum


class NotificationTypeEnum(str, Enum):
    LOAN = "loan"
    REPAYMENT = "repayment"
    KYC = "kyc"
    WALLET = "wallet"
    MINING = "mining"
    CREDIT = "credit"
    TRADE = "trade"
    SYSTEM = "system"


class NotificationResponse(BaseModel):
    """Response schema for notification"""
    id: int
    type: NotificationTypeEnum
    title: str
    message: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    """Paginated list of notifications"""
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int
