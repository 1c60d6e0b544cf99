from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, update
from typing import List, Optional
import logging

from tradevault.core.database import utcnow
from tradevault.modules.notifications.models import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Persistent per-user in-app notifications.
    Purely informational: nothing reads them back to decide state.
    """

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_entity_type: str = None,
        related_entity_id: int = None
    ) -> Notification:
        """Store a notification for the user"""
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id
        )
        db.add(notification)
        await db.flush()
        logger.debug(f"Notification {notification.type.value} queued for user {user_id}")
        return notification

    @staticmethod
    async def get_user_notifications(
        db: AsyncSession,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
        notification_type: Optional[NotificationType] = None,
        unread_only: bool = False
    ) -> tuple[List[Notification], int, int]:
        """Get user notifications with filtering and pagination"""
        query = select(Notification).where(Notification.user_id == user_id)

        if notification_type:
            query = query.where(Notification.type == notification_type)
        if unread_only:
            query = query.where(Notification.read_at.is_(None))

        total = await db.scalar(select(func.count()).select_from(query.subquery()))
        unread_count = await NotificationService.unread_count(db, user_id)

        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        notifications = result.scalars().all()

        return list(notifications), total or 0, unread_count

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: int) -> int:
        count = await db.scalar(
            select(func.count()).where(
                and_(Notification.user_id == user_id, Notification.read_at.is_(None))
            )
        )
        return count or 0

    @staticmethod
    async def get_notification(db: AsyncSession, notification_id: int, user_id: int) -> Optional[Notification]:
        query = select(Notification).where(
            and_(Notification.id == notification_id, Notification.user_id == user_id)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_as_read(db: AsyncSession, notification_id: int, user_id: int) -> Optional[Notification]:
        notification = await NotificationService.get_notification(db, notification_id, user_id)
        if notification and not notification.read_at:
            notification.read_at = utcnow()
            await db.flush()
            await db.refresh(notification)
        return notification

    @staticmethod
    async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications as read for user"""
        stmt = (
            update(Notification)
            .where(and_(Notification.user_id == user_id, Notification.read_at.is_(None)))
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount
