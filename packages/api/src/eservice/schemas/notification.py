# This project was developed with assistance from AI tools.
"""Notification request/response schemas."""

from datetime import datetime

from db.enums import NotificationPriority, NotificationType, UserRole
from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import Pagination


class NotificationResponse(BaseModel):
    """Single notification; also the body of a live push envelope."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    recipient_id: str | None = None
    recipient_role: UserRole | None = None
    entity_type: str | None = None
    entity_id: int | None = None
    action_url: str | None = None
    data: dict | None = None
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    pagination: Pagination


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class NotificationCreate(BaseModel):
    """Operator-sent notification. Leave both recipients empty to broadcast."""

    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    type: NotificationType = NotificationType.SYSTEM_ANNOUNCEMENT
    priority: NotificationPriority = NotificationPriority.NORMAL
    recipient_id: str | None = None
    recipient_role: UserRole | None = None
    action_url: str | None = None
    scheduled_at: datetime | None = None

    @model_validator(mode="after")
    def _single_recipient(self):
        if self.recipient_id is not None and self.recipient_role is not None:
            raise ValueError("Set recipient_id or recipient_role, not both")
        if self.scheduled_at is not None and self.scheduled_at.tzinfo is None:
            raise ValueError("scheduled_at must include a timezone")
        return self


class NotificationStatisticsResponse(BaseModel):
    total: int
    unread: int
    by_type: dict[str, int]
