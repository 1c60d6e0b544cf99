from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user
from tradevault.modules.users.models import User
from tradevault.modules.notifications import schemas
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.notifications.models import NotificationType

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=schemas.NotificationListResponse)
async def get_notifications(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    notification_type: Optional[str] = Query(None, description="Filter by type"),
    unread_only: bool = Query(False, description="Only show unread"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get paginated list of notifications for the current user.

    - Supports filtering by type and read status
    - Returns total count and unread count
    """
    skip = (page - 1) * limit

    type_filter = None
    if notification_type:
        try:
            type_filter = NotificationType(notification_type)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid notification type: {notification_type}"
            )

    notifications, total, unread_count = await NotificationService.get_user_notifications(
        db=db,
        user_id=current_user.id,
        skip=skip,
        limit=limit,
        notification_type=type_filter,
        unread_only=unread_only
    )

    return schemas.NotificationListResponse(
        notifications=[schemas.NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread_count,
        page=page,
        limit=limit
    )


@router.get("/unread-count")
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get count of unread notifications"""
    return {"unread_count": await NotificationService.unread_count(db, current_user.id)}


@router.put("/read-all", status_code=status.HTTP_200_OK)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mark every notification as read"""
    count = await NotificationService.mark_all_as_read(db, current_user.id)
    return {"message": f"Marked {count} notifications as read", "count": count}


@router.put("/{notification_id}/read", response_model=schemas.NotificationResponse)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Mark a notification as read"""
    notification = await NotificationService.mark_as_read(db, notification_id, current_user.id)
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
    return notification
