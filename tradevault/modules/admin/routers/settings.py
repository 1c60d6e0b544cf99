"""
Admin system configuration and audit log endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import require_admin
from tradevault.modules.users.models import User
from tradevault.modules.wallet.services import WalletService
from tradevault.modules.admin import schemas
from tradevault.modules.admin.services import AdminService

router = APIRouter(tags=["admin-settings"])


# ============================================================
# System Configuration
# ============================================================

@router.get("/config", response_model=schemas.SystemConfigListResponse)
async def get_config(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """All configuration entries plus the deposit addresses per network"""
    return {
        "config": await AdminService(db).get_config(),
        "recharge_addresses": await WalletService.get_recharge_addresses(db)
    }


@router.put("/config/recharge-address", response_model=schemas.SystemConfigResponse)
async def set_recharge_address(
    update: schemas.RechargeAddressUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Set the deposit address users see for a network"""
    return await AdminService(db).set_recharge_address(admin.id, update.network, update.address)


# ============================================================
# Audit Logs
# ============================================================

@router.get("/audit-logs", response_model=schemas.AuditLogListResponse)
async def get_audit_logs(
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    admin_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Get audit logs with filtering"""
    logs, total = await AdminService(db).get_audit_logs(action, resource_type, admin_id, page, page_size)
    return {
        "logs": logs,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size
    }
