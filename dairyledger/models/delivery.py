from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class DeliveryStatus(str, Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class TimeSlot(str, Enum):
    MORNING = "morning"
    EVENING = "evening"


class SkippedBy(str, Enum):
    USER = "user"
    LABOUR = "labour"
    ADMIN = "admin"
    SYSTEM = "system"


class DeliveryPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"


class DeliveryPaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"
    WALLET = "wallet"


# delivered, skipped and cancelled are terminal
ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.SCHEDULED: frozenset(
        {DeliveryStatus.PENDING, DeliveryStatus.DELIVERED, DeliveryStatus.SKIPPED, DeliveryStatus.CANCELLED}
    ),
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.SKIPPED, DeliveryStatus.CANCELLED}),
}


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class DeliveryItem(BaseModel):
    id: int | None = None
    delivery_id: int | None = None
    product_id: int
    quantity: Decimal
    price_per_unit: int  # paise, price at time of delivery
    total_price: int = 0  # paise
    sort_order: int = 0


class Delivery(BaseModel):
    id: int | None = None
    uuid: str = ""
    user_id: int
    labour_id: int | None = None
    route_id: int | None = None
    delivery_date: date
    delivery_time: TimeSlot = TimeSlot.MORNING
    items: list[DeliveryItem] = []
    total_amount: int = 0  # paise
    status: DeliveryStatus = DeliveryStatus.SCHEDULED
    skip_reason: str = ""
    skipped_by: SkippedBy | None = None
    delivered_at: datetime | None = None
    payment_status: DeliveryPaymentStatus = DeliveryPaymentStatus.PENDING
    payment_method: DeliveryPaymentMethod = DeliveryPaymentMethod.CASH
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def product_ids(self) -> list[int]:
        return [item.product_id for item in self.items]
