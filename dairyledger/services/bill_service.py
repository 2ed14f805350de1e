from __future__ import annotations

import calendar
import logging
from datetime import datetime

from dairyledger.constants import format_period, local_now
from dairyledger.errors import (
    AlreadyExists,
    ConcurrentModification,
    InvalidTransition,
    NoBillableActivity,
    NotFound,
    ValidationError,
)
from dairyledger.ledger import issue_status, pending_amount
from dairyledger.models import format_inr
from dairyledger.models.audit_log import AuditEventType
from dairyledger.models.bill import Bill, BillStatus
from dairyledger.models.notification import NotificationCategory
from dairyledger.models.payment import Payment
from dairyledger.repositories.base import (
    BillRepository,
    DuplicateRecordError,
    PaymentRepository,
    TransactionManager,
    UserRepository,
)
from dairyledger.services.aggregation_service import DeliveryAggregator
from dairyledger.services.audit_serializers import serialize_bill
from dairyledger.services.audit_service import AuditService
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.settings import settings

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 5


def validate_period(month: int, year: int) -> None:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month!r}")
    if isinstance(year, bool) or not isinstance(year, int) or not 2000 <= year <= 9999:
        raise ValidationError(f"Invalid year: {year!r}")


def billing_period(month: int, year: int) -> tuple[datetime, datetime]:
    """First day 00:00:00 to last day 23:59:59 of the month."""
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 1), datetime(year, month, last_day, 23, 59, 59)


def due_date_for(month: int, year: int, due_day: int | None = None) -> datetime:
    """Midnight on ``due_day`` of the month after the billing period."""
    day = due_day or settings.bill_due_day
    if month == 12:
        return datetime(year + 1, 1, day)
    return datetime(year, month + 1, day)


def format_bill_number(year: int, month: int, sequence: int, prefix: str | None = None) -> str:
    return f"{prefix or settings.bill_number_prefix}-{year}{month:02d}-{sequence:05d}"


class BillService:
    def __init__(
        self,
        bill_repo: BillRepository,
        user_repo: UserRepository,
        payment_repo: PaymentRepository,
        aggregator: DeliveryAggregator,
        tx: TransactionManager,
        dispatcher: NotificationDispatcher | None = None,
        audit: AuditService | None = None,
    ) -> None:
        self.bill_repo = bill_repo
        self.user_repo = user_repo
        self.payment_repo = payment_repo
        self.aggregator = aggregator
        self.tx = tx
        self.dispatcher = dispatcher
        self.audit = audit

    def generate_bill(
        self,
        user_id: int,
        month: int,
        year: int,
        discount: int = 0,
        tax: int = 0,
        actor_id: int | None = None,
        source: str = "",
    ) -> Bill:
        validate_period(month, year)
        if discount < 0 or tax < 0:
            raise ValidationError("Discount and tax cannot be negative")

        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound(f"Customer {user_id} not found")

        if self.bill_repo.get_for_period(user_id, month, year) is not None:
            raise AlreadyExists(f"Bill already exists for {format_period(month, year)}")

        start, end = billing_period(month, year)
        aggregation = self.aggregator.aggregate(user_id, start, end)
        if not aggregation.has_billable_activity:
            raise NoBillableActivity(f"No delivered items for {user.name} in {format_period(month, year)}")

        subtotal = aggregation.subtotal
        total = subtotal - discount + tax
        if total < 0:
            raise ValidationError("Discount cannot exceed the bill subtotal")

        draft = Bill(
            user_id=user_id,
            month=month,
            year=year,
            period_start=start,
            period_end=end,
            delivery_ids=aggregation.delivery_ids,
            line_items=aggregation.line_items(),
            total_litres=aggregation.total_litres,
            total_deliveries=aggregation.delivered_count,
            skipped_deliveries=aggregation.skipped_count,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total_amount=total,
            paid_amount=0,
            pending_amount=pending_amount(total, 0),
            status=issue_status(total),
            due_date=due_date_for(month, year),
        )

        bill = None
        for attempt in range(MAX_NUMBER_ATTEMPTS):
            draft.bill_number = format_bill_number(year, month, self.bill_repo.count_all() + 1 + attempt)
            try:
                with self.tx.atomic():
                    bill = self.bill_repo.create(draft)
                    self.user_repo.adjust_pending_amount(user_id, total)
            except DuplicateRecordError:
                if self.bill_repo.get_for_period(user_id, month, year) is not None:
                    raise AlreadyExists(f"Bill already exists for {format_period(month, year)}") from None
                logger.warning("Bill number %s already taken, retrying", draft.bill_number)
                continue
            break
        if bill is None:
            raise ConcurrentModification("Could not allocate a bill number")

        logger.info(
            "Bill generated: number=%s user=%s period=%s total=%d",
            bill.bill_number,
            user_id,
            bill.reference_month,
            total,
        )
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.BILL_GENERATE,
                actor_id=actor_id,
                source=source,
                entity_type="bill",
                entity_id=bill.id,
                entity_uuid=bill.uuid,
                new_state=serialize_bill(bill),
            )
        if self.dispatcher is not None:
            self.dispatcher.safe_dispatch(
                user_id,
                "Bill Generated",
                f"Your bill {bill.bill_number} for {format_period(month, year)} is ready. "
                f"Amount: {format_inr(total)}",
                NotificationCategory.PAYMENT,
            )
        return bill

    def generate_all_bills(
        self,
        month: int,
        year: int,
        actor_id: int | None = None,
        source: str = "",
    ) -> dict:
        """Generate bills for every active customer, isolating per-customer failures."""
        validate_period(month, year)
        generated = 0
        skipped = 0
        errors: list[dict] = []
        for customer in self.user_repo.list_active_customers():
            try:
                self.generate_bill(customer.id, month, year, actor_id=actor_id, source=source)
                generated += 1
            except (AlreadyExists, NoBillableActivity) as exc:
                logger.debug("Skipping customer=%s: %s", customer.id, exc.message)
                skipped += 1
            except Exception as exc:
                logger.exception("Bill generation failed for customer=%s", customer.id)
                errors.append({"itemId": customer.id, "error": str(exc)})
        logger.info(
            "Bulk generation for %s: generated=%d skipped=%d errors=%d",
            format_period(month, year),
            generated,
            skipped,
            len(errors),
        )
        return {"generated": generated, "skipped": skipped, "errors": errors}

    def get_bill(self, bill_id: int) -> Bill:
        bill = self.bill_repo.get_by_id(bill_id)
        if bill is None:
            raise NotFound(f"Bill {bill_id} not found")
        return bill

    def get_by_number(self, bill_number: str) -> Bill:
        bill = self.bill_repo.get_by_number(bill_number)
        if bill is None:
            raise NotFound(f"Bill {bill_number} not found")
        return bill

    def list_bills(
        self,
        user_id: int | None = None,
        month: int | None = None,
        year: int | None = None,
        status: BillStatus | None = None,
    ) -> list[Bill]:
        return self.bill_repo.list_bills(user_id=user_id, month=month, year=year, status=status)

    def list_payments(self, bill_id: int) -> list[Payment]:
        """Payment history of a bill, read from the payments table."""
        self.get_bill(bill_id)
        return self.payment_repo.list_by_bill(bill_id)

    def mark_sent(self, bill_id: int, actor_id: int | None = None, source: str = "") -> Bill:
        bill = self.get_bill(bill_id)
        if bill.status != BillStatus.GENERATED:
            raise InvalidTransition(f"Only generated bills can be sent (status is {bill.status.value})")
        sent_at = local_now()
        if not self.bill_repo.mark_sent(bill_id, sent_at, bill.version):
            raise ConcurrentModification(f"Bill {bill.bill_number} changed while it was being sent")
        updated = self.get_bill(bill_id)
        logger.info("Bill sent: number=%s", updated.bill_number)
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.BILL_SEND,
                actor_id=actor_id,
                source=source,
                entity_type="bill",
                entity_id=bill.id,
                entity_uuid=bill.uuid,
                previous_state={"status": bill.status.value},
                new_state={"status": updated.status.value, "sent_at": sent_at.isoformat()},
            )
        return updated

    def customer_balance(self, user_id: int) -> dict:
        """Cached pending amount next to the figure rebuilt from unpaid bills."""
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound(f"Customer {user_id} not found")
        unpaid = self.bill_repo.list_unpaid_for_user(user_id)
        return {
            "customerId": user_id,
            "cached": user.pending_amount,
            "computed": sum(b.pending_amount for b in unpaid),
            "unpaidBills": len(unpaid),
        }

    def recompute_pending_amount(self, user_id: int, actor_id: int | None = None, source: str = "") -> int:
        balance = self.customer_balance(user_id)
        if balance["cached"] != balance["computed"]:
            self.user_repo.set_pending_amount(user_id, balance["computed"])
            logger.info(
                "Pending amount rebuilt for user=%s: %d -> %d",
                user_id,
                balance["cached"],
                balance["computed"],
            )
            if self.audit is not None:
                self.audit.safe_log(
                    AuditEventType.BALANCE_RECOMPUTE,
                    actor_id=actor_id,
                    source=source,
                    entity_type="user",
                    entity_id=user_id,
                    previous_state={"pending_amount": balance["cached"]},
                    new_state={"pending_amount": balance["computed"]},
                )
        return balance["computed"]
