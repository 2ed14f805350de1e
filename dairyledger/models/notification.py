from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class NotificationCategory(str, Enum):
    DELIVERY = "delivery"
    PAYMENT = "payment"
    REMINDER = "reminder"
    ANNOUNCEMENT = "announcement"
    SYSTEM = "system"
    ALERT = "alert"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ChannelResult(BaseModel):
    channel: str
    status: str  # 'sent', 'failed' or 'skipped'
    sent_at: datetime | None = None


class Notification(BaseModel):
    id: int | None = None
    uuid: str = ""
    user_id: int
    title: str
    message: str
    category: NotificationCategory = NotificationCategory.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: list[str] = []
    sent_via: list[ChannelResult] = []
    is_read: bool = False
    created_at: datetime | None = None

    def delivered_on(self, channel: str) -> bool:
        return any(r.channel == channel and r.status == "sent" for r in self.sent_via)
