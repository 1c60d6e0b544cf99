"""
Admin loan and mining endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import require_admin
from tradevault.modules.users.models import User
from tradevault.modules.loans.schemas import OverdueSweepResponse
from tradevault.modules.mining.models import MiningStatus
from tradevault.modules.mining.schemas import MiningInvestmentResponse
from tradevault.modules.mining.services import MiningService
from tradevault.modules.admin import schemas
from tradevault.modules.admin.services import AdminService

router = APIRouter(tags=["admin-loans"])


@router.post("/loans/overdue-sweep", response_model=OverdueSweepResponse)
async def overdue_sweep(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Mark approved loans past day 15 as overdue and apply the daily credit
    deduction. Safe to run repeatedly: at most one deduction per loan per day.
    """
    return await AdminService(db).run_overdue_sweep(admin.id)


@router.get("/mining", response_model=schemas.MiningListResponse)
async def list_mining(
    status: Optional[MiningStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """List mining investments"""
    investments, total = await MiningService.list_investments(db, status, page, page_size)
    return {"investments": investments, "total": total, "page": page, "page_size": page_size}


@router.post("/mining/{investment_id}/approve", response_model=MiningInvestmentResponse)
async def approve_mining(
    investment_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Activate an investment; the amount is taken from the user's balance"""
    return await AdminService(db).review_mining(admin.id, investment_id, "approve")


@router.post("/mining/{investment_id}/reject", response_model=MiningInvestmentResponse)
async def reject_mining(
    investment_id: int,
    review: Optional[schemas.MiningReviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return await AdminService(db).review_mining(
        admin.id, investment_id, "reject", review.note if review else None
    )


@router.post("/mining/{investment_id}/settle", response_model=MiningInvestmentResponse)
async def settle_mining(
    investment_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Pay back a matured investment with its full-term earnings"""
    return await AdminService(db).review_mining(admin.id, investment_id, "settle")
