"""In-app notifications for project participants."""
from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from milestone_escrow.models.notification import Notification, NotificationType
from milestone_escrow.utils.errors import NotFound


def notify(
    db: Session,
    *,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    project_id: int | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        project_id=project_id,
        is_read=False,
    )
    db.add(notification)
    return notification


def list_for_user(db: Session, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(db.scalars(stmt))


def unread_count(db: Session, user_id: int) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    )
    return int(db.scalar(stmt) or 0)


def mark_read(db: Session, notification_id: int, *, user_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    # Someone else's notification is reported as missing.
    if notification is None or notification.user_id != user_id:
        raise NotFound("Notification not found.")
    notification.is_read = True
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    return result.rowcount or 0


__all__ = ["list_for_user", "mark_all_read", "mark_read", "notify", "unread_count"]
