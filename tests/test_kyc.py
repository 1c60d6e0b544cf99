"""
Integration tests for identity verification
"""
import pytest

from tradevault.core.exceptions import InvalidTransition
from tradevault.modules.kyc.models import IDType, KYCStatus
from tradevault.modules.kyc.services import KYCService
from tradevault.modules.notifications.services import NotificationService


async def _submit(db, user_id):
    return await KYCService.submit_kyc(
        db, user_id, "Jane <b>Doe</b>", IDType.NATIONAL_ID, "ID-998877",
        front_image_url="uploads/kyc/front.png"
    )


class TestSubmission:

    @pytest.mark.integration
    async def test_status_before_submission(self, db_session, unverified_user):
        assert await KYCService.get_kyc_status(db_session, unverified_user.id) == "not_submitted"
        assert not await KYCService.is_verified(db_session, unverified_user.id)

    @pytest.mark.integration
    async def test_submission_is_pending_and_sanitized(self, db_session, unverified_user):
        record = await _submit(db_session, unverified_user.id)

        assert record.status == KYCStatus.PENDING
        assert record.real_name == "Jane bDoe/b"
        assert await KYCService.get_kyc_status(db_session, unverified_user.id) == "pending"

    @pytest.mark.integration
    async def test_no_second_submission_while_pending(self, db_session, unverified_user):
        await _submit(db_session, unverified_user.id)

        with pytest.raises(InvalidTransition):
            await _submit(db_session, unverified_user.id)

    @pytest.mark.integration
    async def test_no_submission_once_verified(self, db_session, test_user):
        with pytest.raises(InvalidTransition):
            await _submit(db_session, test_user.id)


class TestReview:

    @pytest.mark.integration
    async def test_approval_verifies_and_notifies(self, db_session, unverified_user, admin_user):
        record = await _submit(db_session, unverified_user.id)

        record = await KYCService.approve(db_session, record.id, admin_user.id)

        assert record.status == KYCStatus.APPROVED
        assert record.reviewed_by == admin_user.id
        assert await KYCService.is_verified(db_session, unverified_user.id)
        assert await NotificationService.unread_count(db_session, unverified_user.id) == 1

    @pytest.mark.integration
    async def test_rejection_allows_resubmission(self, db_session, unverified_user, admin_user):
        record = await _submit(db_session, unverified_user.id)

        record = await KYCService.reject(db_session, record.id, admin_user.id, "Blurry photo")
        assert record.reject_reason == "Blurry photo"

        resubmitted = await _submit(db_session, unverified_user.id)
        assert resubmitted.id != record.id

    @pytest.mark.integration
    async def test_review_happens_once(self, db_session, unverified_user, admin_user):
        record = await _submit(db_session, unverified_user.id)
        await KYCService.approve(db_session, record.id, admin_user.id)

        with pytest.raises(InvalidTransition):
            await KYCService.reject(db_session, record.id, admin_user.id, "Too late")
