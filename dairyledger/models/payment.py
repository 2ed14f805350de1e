from __future__ import annotations

import secrets
import string
import time
from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# A payment only ever leaves "pending"; completed records are immutable
STATUS_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}),
}

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_transaction_id(timestamp_ms: int | None = None) -> str:
    """Build a cash transaction id: TXN-<base36 ms timestamp>-<6 base36 chars>."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"TXN-{_to_base36(timestamp_ms)}-{random_part}".upper()


class Payment(BaseModel):
    id: int | None = None
    uuid: str = ""
    user_id: int
    bill_id: int | None = None
    amount: int  # paise
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.COMPLETED
    transaction_id: str = ""
    gateway_order_id: str = ""
    gateway_payment_id: str = ""
    gateway_signature: str = ""
    received_by: int | None = None
    notes: str = ""
    paid_at: datetime | None = None
    created_at: datetime | None = None
