"""
Notification inbox routes.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from arena.api.dependencies import get_current_user, get_db
from arena.api.middleware.error_handler import ErrorCode, NotFoundException
from arena.models.notifications import UserNotification
from arena.models.users import User


class NotificationResponse(BaseModel):
    id: UUID
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[NotificationResponse]:
    """The caller's inbox, newest first."""
    stmt = select(UserNotification).where(UserNotification.customer_id == user.id)
    if unread_only:
        stmt = stmt.where(UserNotification.read.is_(False))
    stmt = stmt.order_by(UserNotification.created_at.desc()).limit(limit)

    notifications = db.execute(stmt).scalars().all()
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    notification = db.get(UserNotification, notification_id)
    # Someone else's notification is reported as missing
    if notification is None or notification.customer_id != user.id:
        raise NotFoundException(
            "Notification",
            str(notification_id),
            error_code=ErrorCode.NOTIFICATION_NOT_FOUND,
        )

    if not notification.read:
        notification.read = True
        db.commit()

    return NotificationResponse.model_validate(notification)
