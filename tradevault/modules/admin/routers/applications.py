"""
Admin review queue: deposits, withdrawals, loans, repayments, KYC and pending
smart trades (approving a trade settles it as a win, rejecting as a loss).
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import require_admin
from tradevault.modules.users.models import User
from tradevault.modules.admin import schemas
from tradevault.modules.admin.services import AdminService

router = APIRouter(prefix="/applications", tags=["admin-applications"])


@router.get("", response_model=schemas.ApplicationListResponse)
async def list_applications(
    type: schemas.ApplicationFilter = Query(schemas.ApplicationFilter.ALL),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Pending requests from every queue, newest first"""
    applications = await AdminService(db).list_applications(type)
    return {"applications": applications, "total": len(applications)}


@router.post("/batch-approve", response_model=schemas.BatchReviewResponse)
async def batch_approve(
    batch: schemas.BatchReviewRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Approve several requests; one failure does not undo the others"""
    return await _batch(db, admin.id, batch, approve=True)


@router.post("/batch-reject", response_model=schemas.BatchReviewResponse)
async def batch_reject(
    batch: schemas.BatchReviewRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Reject several requests with one shared reason"""
    return await _batch(db, admin.id, batch, approve=False)


async def _batch(db: AsyncSession, admin_id: int, batch: schemas.BatchReviewRequest, approve: bool) -> dict:
    results = await AdminService(db).batch_review(
        admin_id, [(item.type, item.id) for item in batch.items], approve, batch.reason
    )
    succeeded = sum(1 for r in results if r["success"])
    return {"results": results, "succeeded": succeeded, "failed": len(results) - succeeded}


@router.post("/{app_type}/{item_id}/approve", response_model=schemas.ReviewResult)
async def approve_application(
    app_type: schemas.ApplicationType,
    item_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Approve one request.

    - deposit: credits the balance
    - withdraw: the held amount leaves the account
    - loan: disburses the principal and starts the accrual clock
    - repayment: applied to penalty, then interest, then principal
    - kyc: marks the user verified
    """
    entity = await AdminService(db).review_application(admin.id, app_type, item_id, approve=True)
    return {"type": app_type, "id": item_id, "success": True, "status": entity.status.value}


@router.post("/{app_type}/{item_id}/reject", response_model=schemas.ReviewResult)
async def reject_application(
    app_type: schemas.ApplicationType,
    item_id: int,
    review: Optional[schemas.ReviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Reject one request; a rejected withdrawal returns the held amount"""
    reason = review.reason if review else None
    entity = await AdminService(db).review_application(admin.id, app_type, item_id, approve=False, reason=reason)
    return {"type": app_type, "id": item_id, "success": True, "status": entity.status.value}
