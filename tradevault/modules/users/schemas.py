from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum


class UserRoleEnum(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserRegistrationRequest(BaseModel):
    """User registration request"""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        """Usernames are shown to admins, keep them to a safe character set"""
        if not v.replace("_", "").replace("-", "").replace(".", "").isalnum():
            raise ValueError('Username may only contain letters, digits, "_", "-" and "."')
        return v


class UserLoginRequest(BaseModel):
    """User login request"""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """JWT token response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class BalanceResponse(BaseModel):
    currency: str
    balance: Decimal
    frozen_balance: Decimal

    class Config:
        from_attributes = True


class UserProfileResponse(BaseModel):
    """Public profile of the current user"""
    id: int
    username: Optional[str]
    email: EmailStr
    role: UserRoleEnum
    is_frozen: bool
    credit_score: int
    wallet_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserOverviewResponse(UserProfileResponse):
    """Profile enriched with KYC status and balances"""
    kyc_status: str
    can_withdraw: bool
    balances: List[BalanceResponse] = []


class WalletAddressUpdate(BaseModel):
    wallet_address: str = Field(..., min_length=10, max_length=100)
