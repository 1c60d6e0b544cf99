from fastapi import APIRouter, Depends, status, UploadFile, File, Form
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user
from tradevault.core.storage import save_upload
from tradevault.modules.users.models import User
from tradevault.modules.kyc import schemas
from tradevault.modules.kyc.models import IDType
from tradevault.modules.kyc.services import KYCService

router = APIRouter(prefix="/api/v1/kyc", tags=["kyc"])


@router.get("", response_model=schemas.KYCStatusResponse)
async def get_kyc_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get KYC verification status."""
    record = await KYCService.get_latest(db, current_user.id)
    kyc_status = record.status.value if record else "not_submitted"
    return {
        "status": kyc_status,
        "is_verified": kyc_status == "approved",
        "record": record
    }


@router.post("/submit", response_model=schemas.KYCRecordResponse, status_code=status.HTTP_201_CREATED)
async def submit_kyc(
    real_name: str = Form(..., min_length=2, max_length=200),
    id_type: IDType = Form(...),
    id_number: str = Form(..., min_length=4, max_length=100),
    front_image: Optional[UploadFile] = File(None),
    back_image: Optional[UploadFile] = File(None),
    selfie: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Submit KYC documents for verification.

    - Allowed while nothing is submitted or after a rejection
    - Accepted formats: JPG, PNG, WEBP, PDF (max 5 MB each)
    """
    # Refuse before anything is written to disk
    await KYCService.ensure_can_submit(db, current_user.id)

    front_url = await save_upload(front_image, current_user.id, "kyc", "front")
    back_url = await save_upload(back_image, current_user.id, "kyc", "back")
    selfie_url = await save_upload(selfie, current_user.id, "kyc", "selfie")

    return await KYCService.submit_kyc(
        db,
        current_user.id,
        real_name,
        id_type,
        id_number,
        front_image_url=front_url,
        back_image_url=back_url,
        selfie_url=selfie_url
    )
