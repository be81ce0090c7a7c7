"""Notification inbox endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from milestone_escrow.db import get_db
from milestone_escrow.models.notification import Notification
from milestone_escrow.models.user import User
from milestone_escrow.schemas.notification import NotificationList, NotificationRead
from milestone_escrow.security import require_user
from milestone_escrow.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> NotificationList:
    items = notification_service.list_for_user(db, user.id, unread_only=unread_only, limit=limit)
    return NotificationList(
        items=[NotificationRead.model_validate(item) for item in items],
        unread=notification_service.unread_count(db, user.id),
    )


@router.patch("/read-all")
def mark_all_read(user: User = Depends(require_user), db: Session = Depends(get_db)) -> dict[str, int]:
    updated = notification_service.mark_all_read(db, user.id)
    db.commit()
    return {"updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Notification:
    notification = notification_service.mark_read(db, notification_id, user_id=user.id)
    db.commit()
    return notification
