"""Money arithmetic and bill status derivation shared by bills and payments.

Amounts are integer paise throughout. Quantities are ``Decimal`` so that half
litres and similar fractions never pass through binary floating point.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dairyledger.errors import InvalidAmount, ValidationError
from dairyledger.models.bill import Bill, BillStatus

ONE_PAISA = Decimal("1")


def to_quantity(value: Decimal | int | float | str) -> Decimal:
    """Coerce a quantity to Decimal, going through ``str`` for floats."""
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid quantity: {value!r}") from exc
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError(f"Quantity must be positive: {value!r}")
    return quantity


def line_total(quantity: Decimal, unit_price: int) -> int:
    """quantity × unit price in paise, rounded half-up to the paisa."""
    return int((quantity * unit_price).quantize(ONE_PAISA, rounding=ROUND_HALF_UP))


def require_positive_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive number of paise, got {amount!r}")
    return amount


def pending_amount(total_amount: int, paid_amount: int) -> int:
    return max(0, total_amount - paid_amount)


def derive_bill_status(
    total_amount: int,
    paid_amount: int,
    due_date: datetime,
    now: datetime,
    current: BillStatus,
) -> BillStatus:
    """Single source of truth for a bill's status.

    paid iff nothing is pending; overdue iff something is pending past the due
    date; partial iff something was paid, something is pending and the due
    date has not passed. Otherwise the bill keeps its issue status (draft,
    generated or sent).
    """
    if pending_amount(total_amount, paid_amount) == 0:
        return BillStatus.PAID
    if now > due_date:
        return BillStatus.OVERDUE
    if paid_amount > 0:
        return BillStatus.PARTIAL
    if current in (BillStatus.DRAFT, BillStatus.GENERATED, BillStatus.SENT):
        return current
    return BillStatus.GENERATED


def issue_status(total_amount: int) -> BillStatus:
    """Status of a freshly generated bill. Overdue is left to the overdue job."""
    if pending_amount(total_amount, 0) == 0:
        return BillStatus.PAID
    return BillStatus.GENERATED


def settle(bill: Bill, amount: int, now: datetime) -> Bill:
    """Return a copy of ``bill`` with ``amount`` applied."""
    require_positive_amount(amount)
    paid = bill.paid_amount + amount
    return bill.model_copy(
        update={
            "paid_amount": paid,
            "pending_amount": pending_amount(bill.total_amount, paid),
            "status": derive_bill_status(bill.total_amount, paid, bill.due_date, now, bill.status),
        }
    )
