from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditEventType:
    """String constants for all audit event types."""

    # Bill events
    BILL_GENERATE = "bill.generate"
    BILL_SEND = "bill.send"
    BILL_OVERDUE = "bill.overdue"

    # Payment events
    PAYMENT_RECORD = "payment.record"
    PAYMENT_VERIFY = "payment.verify"
    PAYMENT_STATUS = "payment.status"

    # Delivery events
    DELIVERY_CREATE = "delivery.create"
    DELIVERY_STATUS = "delivery.status"

    # Customer events
    BALANCE_RECOMPUTE = "customer.balance_recompute"


class AuditLog(BaseModel):
    id: int | None = None
    uuid: str = ""
    event_type: str
    actor_id: int | None = None
    source: str = ""  # 'web', 'cli' or 'scheduler'
    entity_type: str = ""
    entity_id: int | None = None
    entity_uuid: str = ""
    previous_state: dict | None = None  # JSON (None for creates)
    new_state: dict | None = None
    metadata: dict = {}
    created_at: datetime | None = None
