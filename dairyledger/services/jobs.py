"""Daily batch jobs run by the scheduler.

Every job works item by item. One customer or bill failing is logged and
collected in the result; the rest of the batch still runs.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from pydantic import BaseModel

from dairyledger.ledger import derive_bill_status, line_total
from dairyledger.models import format_inr
from dairyledger.models.audit_log import AuditEventType
from dairyledger.models.bill import Bill, BillReminder, BillStatus, ReminderChannel, ReminderKind
from dairyledger.models.delivery import Delivery, DeliveryItem, DeliveryStatus, TimeSlot
from dairyledger.models.notification import Notification, NotificationCategory, NotificationPriority
from dairyledger.models.user import SubscriptionSlot, User
from dairyledger.repositories.base import BillRepository, DeliveryRepository, ProductRepository, UserRepository
from dairyledger.services.audit_serializers import serialize_bill_settlement
from dairyledger.services.audit_service import AuditService
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.settings import settings

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class JobResult(BaseModel):
    processed: int = 0
    failed: int = 0
    errors: list[dict] = []

    def record_error(self, item_id: int | None, exc: Exception) -> None:
        self.failed += 1
        self.errors.append({"itemId": item_id, "error": str(exc)})


def days_until_due(due_date: datetime, now: datetime) -> int:
    return math.ceil((due_date - now).total_seconds() / SECONDS_PER_DAY)


def _slot_for(slot: SubscriptionSlot) -> TimeSlot:
    # "both" has no evening counterpart yet; it is delivered in the morning round
    if slot == SubscriptionSlot.EVENING:
        return TimeSlot.EVENING
    return TimeSlot.MORNING


class BillingJobs:
    def __init__(
        self,
        user_repo: UserRepository,
        product_repo: ProductRepository,
        delivery_repo: DeliveryRepository,
        bill_repo: BillRepository,
        dispatcher: NotificationDispatcher,
        audit: AuditService | None = None,
    ) -> None:
        self.user_repo = user_repo
        self.product_repo = product_repo
        self.delivery_repo = delivery_repo
        self.bill_repo = bill_repo
        self.dispatcher = dispatcher
        self.audit = audit

    def materialize_deliveries(self, now: datetime) -> JobResult:
        """Create tomorrow's scheduled deliveries from active subscriptions."""
        result = JobResult()
        tomorrow = now.date() + timedelta(days=1)
        for customer in self.user_repo.list_subscribed_customers():
            try:
                result.processed += self._materialize_for(customer, tomorrow)
            except Exception as exc:
                logger.exception("Delivery materialization failed for customer=%s", customer.id)
                result.record_error(customer.id, exc)
        logger.info(
            "Materialized %d deliveries for %s (%d failures)",
            result.processed,
            tomorrow,
            result.failed,
        )
        return result

    def _materialize_for(self, customer: User, delivery_date) -> int:
        items = customer.subscription.items
        catalog = self.product_repo.get_many([item.product_id for item in items])
        created = 0
        for item in items:
            product = catalog.get(item.product_id)
            if product is None or not product.is_available:
                logger.debug("Skipping unavailable product=%s for customer=%s", item.product_id, customer.id)
                continue
            if self.delivery_repo.exists_for_product(customer.id, delivery_date, product.id):
                continue
            total = line_total(item.quantity, product.price_per_unit)
            self.delivery_repo.create(
                Delivery(
                    user_id=customer.id,
                    labour_id=customer.assigned_labour_id,
                    route_id=customer.assigned_route_id,
                    delivery_date=delivery_date,
                    delivery_time=_slot_for(item.delivery_time),
                    items=[
                        DeliveryItem(
                            product_id=product.id,
                            quantity=item.quantity,
                            price_per_unit=product.price_per_unit,
                            total_price=total,
                        )
                    ],
                    total_amount=total,
                    status=DeliveryStatus.SCHEDULED,
                )
            )
            created += 1
        return created

    def _log_reminders(self, bill: Bill, notification: Notification | None, kind: ReminderKind) -> None:
        if notification is None:
            return
        for channel_result in notification.sent_via:
            if channel_result.status != "sent":
                continue
            self.bill_repo.add_reminder(
                BillReminder(
                    bill_id=bill.id,
                    channel=ReminderChannel(channel_result.channel),
                    kind=kind,
                    sent_at=channel_result.sent_at,
                )
            )

    def send_payment_reminders(self, now: datetime) -> JobResult:
        """Remind customers about open bills due within the reminder window."""
        result = JobResult()
        window_end = now + timedelta(days=settings.reminder_window_days)
        for bill in self.bill_repo.list_open_due_between(now, window_end):
            try:
                days = days_until_due(bill.due_date, now)
                notification = self.dispatcher.dispatch(
                    bill.user_id,
                    f"Payment Reminder - {settings.business_name}",
                    f"Reminder: Your milk bill of {format_inr(bill.pending_amount)} is due in {days} days. "
                    "Pay now to avoid late fees!",
                    NotificationCategory.REMINDER,
                    NotificationPriority.HIGH,
                )
                self._log_reminders(bill, notification, ReminderKind.REMINDER)
                result.processed += 1
            except Exception as exc:
                logger.exception("Reminder failed for bill=%s", bill.bill_number)
                result.record_error(bill.id, exc)
        logger.info("Payment reminders sent: %d (%d failures)", result.processed, result.failed)
        return result

    def mark_overdue_bills(self, now: datetime) -> JobResult:
        """Move open bills past their due date to overdue and warn the customer."""
        result = JobResult()
        for bill in self.bill_repo.list_open_due_before(now):
            try:
                status = derive_bill_status(bill.total_amount, bill.paid_amount, bill.due_date, now, bill.status)
                updated = bill.model_copy(update={"status": status})
                if not self.bill_repo.update_settlement(updated, bill.version):
                    raise RuntimeError(f"Bill {bill.bill_number} changed during the overdue run")
                if status != BillStatus.OVERDUE:
                    logger.info(
                        "Bill %s is settled, not overdue: %s -> %s", bill.bill_number, bill.status.value, status.value
                    )
                    continue
                result.processed += 1
                logger.info("Bill %s: %s -> %s", bill.bill_number, bill.status.value, status.value)
                if self.audit is not None:
                    self.audit.safe_log(
                        AuditEventType.BILL_OVERDUE,
                        source="scheduler",
                        entity_type="bill",
                        entity_id=bill.id,
                        entity_uuid=bill.uuid,
                        previous_state=serialize_bill_settlement(bill),
                        new_state=serialize_bill_settlement(updated),
                    )
                notification = self.dispatcher.safe_dispatch(
                    bill.user_id,
                    f"Payment Overdue - {settings.business_name}",
                    f"URGENT: Your milk bill of {format_inr(bill.pending_amount)} is overdue. "
                    "Please pay immediately to continue service.",
                    NotificationCategory.ALERT,
                    NotificationPriority.URGENT,
                )
                self._log_reminders(bill, notification, ReminderKind.OVERDUE)
            except Exception as exc:
                logger.exception("Overdue transition failed for bill=%s", bill.bill_number)
                result.record_error(bill.id, exc)
        logger.info("Bills marked overdue: %d (%d failures)", result.processed, result.failed)
        return result

    def send_daily_report(self, now: datetime) -> JobResult:
        """Email the day's delivery figures to admins."""
        result = JobResult()
        stats = self.delivery_repo.stats_for_day(now.date())
        delivered = stats.get(DeliveryStatus.DELIVERED.value, {"count": 0, "total_amount": 0})
        skipped = stats.get(DeliveryStatus.SKIPPED.value, {"count": 0, "total_amount": 0})
        message = (
            f"Daily Report ({now:%d/%m/%Y}):\n"
            f"Delivered: {delivered['count']}\n"
            f"Skipped: {skipped['count']}\n"
            f"Revenue: {format_inr(delivered['total_amount'])}"
        )
        for admin in self.user_repo.list_admins():
            if not admin.notification_preferences.email:
                continue
            try:
                self.dispatcher.dispatch(
                    admin.id,
                    f"Daily Report - {settings.business_name}",
                    message,
                    NotificationCategory.SYSTEM,
                    channels=["email"],
                )
                result.processed += 1
            except Exception as exc:
                logger.exception("Daily report failed for admin=%s", admin.id)
                result.record_error(admin.id, exc)
        logger.info("Daily report sent to %d admins", result.processed)
        return result
