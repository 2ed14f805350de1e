"""Request bodies and JSON rendering for the API.

Amounts are integer paise on the wire. Quantities are decimal strings so that
fractional litres round-trip exactly.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from dairyledger.models.bill import Bill
from dairyledger.models.delivery import Delivery, DeliveryPaymentMethod, DeliveryStatus, TimeSlot
from dairyledger.models.payment import Payment, PaymentMethod, PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateBillRequest(CamelModel):
    customer_id: int
    month: int
    year: int
    discount: int = 0
    tax: int = 0


class GenerateAllRequest(CamelModel):
    month: int
    year: int


class BillPaymentRequest(CamelModel):
    amount: int
    method: PaymentMethod = PaymentMethod.CASH
    transaction_id: str = ""
    notes: str = ""
    status: PaymentStatus = PaymentStatus.COMPLETED


class CreateOrderRequest(CamelModel):
    amount: int
    bill_id: int | None = None


class VerifyPaymentRequest(CamelModel):
    order_id: str
    payment_id: str
    signature: str
    amount: int
    bill_id: int | None = None
    customer_id: int | None = None


class CashPaymentRequest(CamelModel):
    customer_id: int
    amount: int
    bill_id: int | None = None
    notes: str = ""


class PaymentStatusRequest(CamelModel):
    status: PaymentStatus


class DeliveryItemRequest(CamelModel):
    product_id: int
    quantity: Decimal
    price_per_unit: int | None = None


class CreateDeliveryRequest(CamelModel):
    customer_id: int
    delivery_date: date
    delivery_time: TimeSlot = TimeSlot.MORNING
    items: list[DeliveryItemRequest]
    labour_id: int | None = None
    route_id: int | None = None
    notes: str = ""


class DeliveryStatusRequest(CamelModel):
    status: DeliveryStatus
    skip_reason: str = ""
    payment_method: DeliveryPaymentMethod | None = None


class SkipDeliveryRequest(CamelModel):
    reason: str = ""
    customer_id: int | None = None


class ConfirmDeliveryRequest(CamelModel):
    customer_id: int | None = None


def camelize(value):
    """Recursively rename dict keys from snake_case to camelCase."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


def bill_json(bill: Bill, payments: list[Payment] | None = None) -> dict:
    data = camelize(bill.model_dump(mode="json"))
    if payments is not None:
        data["payments"] = [payment_json(p) for p in payments]
    return data


def payment_json(payment: Payment) -> dict:
    return camelize(payment.model_dump(mode="json", exclude={"gateway_signature"}))


def delivery_json(delivery: Delivery) -> dict:
    return camelize(delivery.model_dump(mode="json"))
