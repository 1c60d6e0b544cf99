from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from enum import Enum


class IDTypeEnum(str, Enum):
    PASSPORT = "passport"
    DRIVER_LICENSE = "driver_license"
    NATIONAL_ID = "national_id"
    OTHER = "other"


class KYCStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KYCRecordResponse(BaseModel):
    """One verification submission"""
    id: int
    real_name: str
    id_type: IDTypeEnum
    id_number: str
    front_image_url: Optional[str] = None
    back_image_url: Optional[str] = None
    selfie_url: Optional[str] = None
    status: KYCStatusEnum
    reject_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class KYCStatusResponse(BaseModel):
    """Verification status derived from the latest submission"""
    status: str  # not_submitted | pending | approved | rejected
    is_verified: bool
    record: Optional[KYCRecordResponse] = None
