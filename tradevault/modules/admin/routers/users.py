"""
Admin user management endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import require_admin
from tradevault.modules.users.models import User
from tradevault.modules.users.schemas import UserProfileResponse
from tradevault.modules.credit.schemas import CreditRestoreRequest, CreditScoreLogResponse
from tradevault.modules.admin import schemas
from tradevault.modules.admin.services import AdminService

router = APIRouter(prefix="/users", tags=["admin-users"])


@router.get("", response_model=schemas.UserListResponse)
async def list_users(
    search: Optional[str] = None,
    is_frozen: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """List users, searching email, username and wallet address"""
    users, total = await AdminService(db).get_users(search, is_frozen, page, page_size)
    return {
        "users": users,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size
    }


@router.put("/{user_id}/freeze", response_model=UserProfileResponse)
async def set_frozen(
    user_id: int,
    freeze: schemas.FreezeRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Freeze or unfreeze an account"""
    return await AdminService(db).set_frozen(admin.id, user_id, freeze.is_frozen, freeze.reason)


@router.put("/{user_id}/balance", response_model=schemas.BalanceAdjustmentResponse)
async def adjust_balance(
    user_id: int,
    adjustment: schemas.BalanceAdjustmentRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Manually correct a balance.

    - Positive amounts credit, negative amounts debit
    - A debit larger than the balance is refused
    - Written to the ledger as an adjustment
    """
    return await AdminService(db).adjust_balance(
        admin.id, user_id, adjustment.amount, adjustment.reason, adjustment.currency
    )


@router.post("/{user_id}/credit/restore", response_model=CreditScoreLogResponse)
async def restore_credit(
    user_id: int,
    restore: CreditRestoreRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Give back credit score points"""
    return await AdminService(db).restore_credit(admin.id, user_id, restore.points, restore.reason)
