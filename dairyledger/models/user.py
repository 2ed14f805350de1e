from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    CUSTOMER = "user"
    LABOUR = "labour"
    ADMIN = "admin"


class SubscriptionPlan(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class SubscriptionSlot(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    BOTH = "both"


class NotificationPreferences(BaseModel):
    sms: bool = True
    email: bool = True
    push: bool = True


class SubscriptionItem(BaseModel):
    id: int | None = None
    user_id: int | None = None
    product_id: int
    quantity: Decimal = Decimal("1")
    delivery_time: SubscriptionSlot = SubscriptionSlot.MORNING
    sort_order: int = 0


class Subscription(BaseModel):
    is_active: bool = True
    plan: SubscriptionPlan = SubscriptionPlan.DAILY
    start_date: date | None = None
    items: list[SubscriptionItem] = []


class User(BaseModel):
    id: int | None = None
    uuid: str = ""
    name: str
    email: str = ""
    phone: str = ""
    role: UserRole = UserRole.CUSTOMER
    is_active: bool = True
    pending_amount: int = 0  # paise, cached balance
    notification_preferences: NotificationPreferences = NotificationPreferences()
    subscription: Subscription = Subscription()
    assigned_labour_id: int | None = None
    assigned_route_id: int | None = None
    created_at: datetime | None = None

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER
