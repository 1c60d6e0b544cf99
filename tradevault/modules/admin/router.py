"""
Admin module sub-routers organized by domain.
"""
from fastapi import APIRouter

from tradevault.modules.admin.routers.applications import router as applications_router
from tradevault.modules.admin.routers.users import router as users_router
from tradevault.modules.admin.routers.loans import router as loans_router
from tradevault.modules.admin.routers.settings import router as settings_router
from tradevault.modules.admin.routers.trades import router as trades_router

# Main admin router
router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

# Include all sub-routers
router.include_router(applications_router)
router.include_router(users_router)
router.include_router(loans_router)
router.include_router(settings_router)
router.include_router(trades_router)
