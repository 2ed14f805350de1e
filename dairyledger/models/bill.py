from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from dairyledger.models.product import ProductUnit


class BillStatus(str, Enum):
    DRAFT = "draft"
    GENERATED = "generated"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


# Bills the reminder and overdue jobs look at
OPEN_STATUSES = (BillStatus.GENERATED, BillStatus.SENT, BillStatus.PARTIAL)


class ReminderChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class ReminderKind(str, Enum):
    REMINDER = "reminder"
    OVERDUE = "overdue"


class BillLineItem(BaseModel):
    id: int | None = None
    bill_id: int | None = None
    product_id: int
    product_name: str
    unit: ProductUnit = ProductUnit.LITRE
    total_quantity: Decimal = Decimal("0")
    price_per_unit: int  # paise, last observed delivery price
    total_amount: int = 0  # paise
    sort_order: int = 0


class BillReminder(BaseModel):
    id: int | None = None
    bill_id: int | None = None
    channel: ReminderChannel
    kind: ReminderKind = ReminderKind.REMINDER
    sent_at: datetime | None = None


class Bill(BaseModel):
    id: int | None = None
    uuid: str = ""
    bill_number: str = ""
    user_id: int
    month: int
    year: int
    period_start: datetime
    period_end: datetime
    delivery_ids: list[int] = []
    line_items: list[BillLineItem] = []
    total_litres: Decimal = Decimal("0")
    total_deliveries: int = 0
    skipped_deliveries: int = 0
    subtotal: int = 0  # paise
    discount: int = 0
    tax: int = 0
    total_amount: int = 0
    paid_amount: int = 0
    pending_amount: int = 0
    status: BillStatus = BillStatus.DRAFT
    due_date: datetime
    sent_at: datetime | None = None
    reminders: list[BillReminder] = []
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def reference_month(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def is_past_due(self, now: datetime) -> bool:
        return now > self.due_date
