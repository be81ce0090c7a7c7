"""Notification schemas."""
from datetime import datetime

from milestone_escrow.models.notification import NotificationType

from .common import CamelModel


class NotificationRead(CamelModel):
    id: int
    type: NotificationType
    title: str
    message: str
    project_id: int | None
    is_read: bool
    created_at: datetime


class NotificationList(CamelModel):
    items: list[NotificationRead]
    unread: int
