"""
In-app notification endpoints.

Inbox listing, read state, deletion, stats and per-user notification
settings. Every route works on the current user's own notifications only.
"""

import logging
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.crud import notification as notification_crud
from app.models.user import User
from app.schemas.notification import (
    CountResponse,
    NotificationCreateRequest,
    NotificationCreateResponse,
    NotificationListResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
    NotificationStatsResponse,
)
from app.services.notification_service import send_notification
from app.tasks.notification_tasks import schedule_one_time_notification

router = APIRouter(prefix="/notifications", tags=["Notifications"])
logger = logging.getLogger(__name__)


@router.get("/", response_model=NotificationListResponse)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Paginated inbox, newest first."""
    return notification_crud.get_user_notifications(
        db, current_user.id, page=page, limit=limit, unread_only=unread_only
    )


@router.get("/stats", response_model=NotificationStatsResponse)
def get_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return notification_crud.get_notification_stats(db, current_user.id)


@router.post("/", response_model=NotificationCreateResponse, status_code=status.HTTP_201_CREATED)
def create_notification(
    request: NotificationCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Send a notification to the current user.

    With send_at in the future the dispatch is queued; otherwise it runs
    immediately on every channel the user's settings allow.

    Raises:
        HTTPException 503: If a future dispatch could not be queued
    """
    if request.send_at is not None:
        queued = schedule_one_time_notification(
            db,
            user_id=current_user.id,
            notification_type=request.notification_type,
            title=request.title,
            message=request.message,
            execute_at=request.send_at,
            data=request.data,
            priority=request.priority,
            action_url=request.action_url
        )
        if not queued:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Could not schedule the notification. Please try again."
            )
        return NotificationCreateResponse(success=True, message="Notification scheduled", scheduled=True)

    result = send_notification(
        db,
        user_id=current_user.id,
        notification_type=request.notification_type,
        title=request.title,
        message=request.message,
        data=request.data,
        priority=request.priority,
        action_url=request.action_url
    )
    return NotificationCreateResponse(success=True, message="Notification sent", dispatch=result)


@router.patch("/read-all", response_model=CountResponse)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = notification_crud.mark_all_as_read(db, current_user.id)
    return CountResponse(count=count)


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Mark one notification as read.

    Raises:
        HTTPException 404: Notification not found for this user
    """
    if not notification_crud.mark_as_read(db, current_user.id, notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return {"success": True, "message": "Notification marked as read"}


@router.delete("/cleanup", response_model=CountResponse)
def cleanup_notifications(
    older_than_days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete the user's read notifications older than older_than_days."""
    count = notification_crud.cleanup_old_notifications(
        db, user_id=current_user.id, older_than_days=older_than_days
    )
    logger.info(f"User {current_user.id} cleaned up {count} notifications")
    return CountResponse(count=count)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Raises:
        HTTPException 404: Notification not found for this user
    """
    if not notification_crud.delete_notification(db, current_user.id, notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return {"success": True, "message": "Notification deleted"}


@router.get("/settings", response_model=NotificationSettingsResponse)
def get_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current settings; a default row is created on first read."""
    settings = notification_crud.get_settings(db, current_user.id)
    if not settings:
        settings = notification_crud.create_default_settings(db, current_user.id)
    return settings


@router.put("/settings", response_model=NotificationSettingsResponse)
def update_settings(
    request: NotificationSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    changes = {
        field: value for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field == "phone_number"
    }
    settings = notification_crud.update_settings(db, current_user.id, changes)
    logger.info(f"User {current_user.id} updated notification settings: {sorted(changes)}")
    return settings
