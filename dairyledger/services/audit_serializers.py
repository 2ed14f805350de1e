"""Serializers that convert models to dicts suitable for audit log state fields.

Datetime fields become ISO 8601 strings and Decimal quantities become strings,
so every value survives a JSON round trip unchanged.
"""

from __future__ import annotations

from datetime import date, datetime

from dairyledger.models.bill import Bill
from dairyledger.models.delivery import Delivery
from dairyledger.models.payment import Payment


def _dt(val: date | datetime | None) -> str | None:
    """Convert date/datetime to ISO string, or None."""
    if val is None:
        return None
    return val.isoformat()


def serialize_bill(bill: Bill) -> dict:
    """Serialize a Bill (with line_items) for audit state."""
    return {
        "id": bill.id,
        "uuid": bill.uuid,
        "bill_number": bill.bill_number,
        "user_id": bill.user_id,
        "reference_month": bill.reference_month,
        "line_items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "total_quantity": str(item.total_quantity),
                "price_per_unit": item.price_per_unit,
                "total_amount": item.total_amount,
            }
            for item in bill.line_items
        ],
        "total_amount": bill.total_amount,
        "paid_amount": bill.paid_amount,
        "pending_amount": bill.pending_amount,
        "status": bill.status.value,
        "due_date": _dt(bill.due_date),
        "version": bill.version,
    }


def serialize_bill_settlement(bill: Bill) -> dict:
    """Just the fields a payment or overdue transition touches."""
    return {
        "paid_amount": bill.paid_amount,
        "pending_amount": bill.pending_amount,
        "status": bill.status.value,
        "version": bill.version,
    }


def serialize_payment(payment: Payment) -> dict:
    """Serialize a Payment for audit state. Gateway signatures are left out."""
    return {
        "id": payment.id,
        "uuid": payment.uuid,
        "user_id": payment.user_id,
        "bill_id": payment.bill_id,
        "amount": payment.amount,
        "method": payment.method.value,
        "status": payment.status.value,
        "transaction_id": payment.transaction_id,
        "gateway_order_id": payment.gateway_order_id,
        "received_by": payment.received_by,
        "paid_at": _dt(payment.paid_at),
    }


def serialize_delivery(delivery: Delivery) -> dict:
    """Serialize a Delivery (with items) for audit state."""
    return {
        "id": delivery.id,
        "uuid": delivery.uuid,
        "user_id": delivery.user_id,
        "delivery_date": _dt(delivery.delivery_date),
        "delivery_time": delivery.delivery_time.value,
        "items": [
            {
                "product_id": item.product_id,
                "quantity": str(item.quantity),
                "price_per_unit": item.price_per_unit,
                "total_price": item.total_price,
            }
            for item in delivery.items
        ],
        "total_amount": delivery.total_amount,
        "status": delivery.status.value,
        "skip_reason": delivery.skip_reason,
        "skipped_by": delivery.skipped_by.value if delivery.skipped_by else None,
        "delivered_at": _dt(delivery.delivered_at),
        "payment_status": delivery.payment_status.value,
    }
