from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from typing import Optional
import logging

from tradevault.core.database import utcnow
from tradevault.core.exceptions import InvalidTransition, NotFound
from tradevault.core.security import sanitize_input
from tradevault.modules.kyc.models import KYCRecord, KYCStatus, IDType
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService

logger = logging.getLogger(__name__)

NOT_SUBMITTED = "not_submitted"


class KYCService:
    """Identity verification submissions and their review"""

    @staticmethod
    async def get_latest(db: AsyncSession, user_id: int) -> Optional[KYCRecord]:
        result = await db.execute(
            select(KYCRecord)
            .where(KYCRecord.user_id == user_id)
            .order_by(KYCRecord.created_at.desc(), KYCRecord.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_kyc_status(db: AsyncSession, user_id: int) -> str:
        """not_submitted, pending, approved or rejected"""
        record = await KYCService.get_latest(db, user_id)
        return record.status.value if record else NOT_SUBMITTED

    @staticmethod
    async def is_verified(db: AsyncSession, user_id: int) -> bool:
        return await KYCService.get_kyc_status(db, user_id) == KYCStatus.APPROVED.value

    @staticmethod
    async def ensure_can_submit(db: AsyncSession, user_id: int) -> None:
        """A new submission is accepted when there is none yet or the latest was rejected"""
        latest = await KYCService.get_latest(db, user_id)
        if latest and latest.status == KYCStatus.PENDING:
            raise InvalidTransition("A verification request is already under review")
        if latest and latest.status == KYCStatus.APPROVED:
            raise InvalidTransition("Identity is already verified")

    @staticmethod
    async def submit_kyc(
        db: AsyncSession,
        user_id: int,
        real_name: str,
        id_type: IDType,
        id_number: str,
        front_image_url: Optional[str] = None,
        back_image_url: Optional[str] = None,
        selfie_url: Optional[str] = None
    ) -> KYCRecord:
        """Submit identity documents for review"""
        await KYCService.ensure_can_submit(db, user_id)

        record = KYCRecord(
            user_id=user_id,
            real_name=sanitize_input(real_name),
            id_type=id_type,
            id_number=sanitize_input(id_number),
            front_image_url=front_image_url,
            back_image_url=back_image_url,
            selfie_url=selfie_url,
            status=KYCStatus.PENDING
        )
        db.add(record)
        await db.flush()
        await db.refresh(record)

        logger.info(f"KYC submission {record.id} received from user {user_id}")
        return record

    @staticmethod
    async def get_record(db: AsyncSession, record_id: int) -> KYCRecord:
        result = await db.execute(
            select(KYCRecord)
            .where(KYCRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFound("KYC record not found")
        return record

    @staticmethod
    async def _review(
        db: AsyncSession,
        record_id: int,
        admin_id: int,
        new_status: KYCStatus,
        reason: Optional[str] = None
    ) -> KYCRecord:
        record = await KYCService.get_record(db, record_id)
        result = await db.execute(
            update(KYCRecord)
            .where(KYCRecord.id == record_id, KYCRecord.status == KYCStatus.PENDING)
            .values(
                status=new_status,
                reject_reason=reason,
                reviewed_by=admin_id,
                reviewed_at=utcnow(),
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"KYC record {record_id} already reviewed ({record.status.value})")
            raise InvalidTransition(f"KYC request is already {record.status.value}")
        return await KYCService.get_record(db, record_id)

    @staticmethod
    async def approve(db: AsyncSession, record_id: int, admin_id: int) -> KYCRecord:
        record = await KYCService._review(db, record_id, admin_id, KYCStatus.APPROVED)
        await NotificationService.notify(
            db, record.user_id, NotificationType.KYC,
            "Identity verified",
            "Your identity verification was approved. Loans are now available.",
            related_entity_type="kyc", related_entity_id=record.id
        )
        logger.info(f"KYC record {record_id} approved by admin {admin_id}")
        return record

    @staticmethod
    async def reject(db: AsyncSession, record_id: int, admin_id: int, reason: Optional[str] = None) -> KYCRecord:
        record = await KYCService._review(db, record_id, admin_id, KYCStatus.REJECTED, reason)
        await NotificationService.notify(
            db, record.user_id, NotificationType.KYC,
            "Identity verification rejected",
            "Your identity verification was rejected." + (f" Reason: {reason}" if reason else ""),
            related_entity_type="kyc", related_entity_id=record.id
        )
        logger.info(f"KYC record {record_id} rejected by admin {admin_id}")
        return record
