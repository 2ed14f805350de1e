from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel

from dairyledger.constants import local_now
from dairyledger.errors import (
    ConcurrentModification,
    DuplicatePayment,
    GatewayUnavailable,
    InvalidSignature,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from dairyledger.ledger import require_positive_amount, settle
from dairyledger.models import format_inr
from dairyledger.models.audit_log import AuditEventType
from dairyledger.models.bill import Bill
from dairyledger.models.notification import NotificationCategory
from dairyledger.models.payment import (
    STATUS_TRANSITIONS,
    Payment,
    PaymentMethod,
    PaymentStatus,
    generate_transaction_id,
)
from dairyledger.repositories.base import (
    BillRepository,
    DuplicateRecordError,
    PaymentRepository,
    TransactionManager,
    UserRepository,
)
from dairyledger.services.audit_serializers import serialize_bill_settlement, serialize_payment
from dairyledger.services.audit_service import AuditService
from dairyledger.services.gateway import PaymentGateway, order_receipt, verify_signature
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.settings import settings

logger = logging.getLogger(__name__)

MAX_SETTLE_ATTEMPTS = 3


class _StaleBill(Exception):
    pass


class PaymentOutcome(BaseModel):
    payment: Payment
    bill: Bill | None = None


class PaymentService:
    def __init__(
        self,
        payment_repo: PaymentRepository,
        bill_repo: BillRepository,
        user_repo: UserRepository,
        tx: TransactionManager,
        dispatcher: NotificationDispatcher | None = None,
        audit: AuditService | None = None,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self.payment_repo = payment_repo
        self.bill_repo = bill_repo
        self.user_repo = user_repo
        self.tx = tx
        self.dispatcher = dispatcher
        self.audit = audit
        self.gateway = gateway

    def _resolve_bill(self, bill_id: int | None, user_id: int | None) -> tuple[Bill | None, int]:
        bill = None
        if bill_id is not None:
            bill = self.bill_repo.get_by_id(bill_id)
            if bill is None:
                raise NotFound(f"Bill {bill_id} not found")
            if user_id is None:
                user_id = bill.user_id
            elif bill.user_id != user_id:
                raise ValidationError(f"Bill {bill.bill_number} does not belong to customer {user_id}")
        if user_id is None:
            raise ValidationError("A customer or a bill is required")
        if self.user_repo.get_by_id(user_id) is None:
            raise NotFound(f"Customer {user_id} not found")
        return bill, user_id

    def _require_receiver(self, received_by: int | None) -> None:
        if received_by is not None and self.user_repo.get_by_id(received_by) is None:
            raise NotFound(f"Receiver {received_by} not found")

    def _apply(self, payment: Payment, bill: Bill | None, now: datetime) -> tuple[Payment, Bill | None]:
        """Insert the payment and, when it is completed, settle the bill and the customer balance.

        All writes share one transaction. A stale bill version rolls the whole
        attempt back and it is retried against a fresh read.
        """
        for _ in range(MAX_SETTLE_ATTEMPTS):
            try:
                with self.tx.atomic():
                    created = self.payment_repo.create(payment)
                    if payment.status == PaymentStatus.COMPLETED:
                        self._settle(created, bill, now)
            except _StaleBill:
                logger.warning("Bill %s changed during payment, retrying", bill.bill_number if bill else None)
                bill = self.bill_repo.get_by_id(bill.id) if bill else None
                continue
            except DuplicateRecordError:
                raise DuplicatePayment(f"Transaction {payment.transaction_id} was already recorded") from None
            updated_bill = self.bill_repo.get_by_id(bill.id) if bill else None
            return created, updated_bill
        raise ConcurrentModification("Bill kept changing while the payment was applied")

    def _settle(self, payment: Payment, bill: Bill | None, now: datetime) -> None:
        if bill is not None:
            updated = settle(bill, payment.amount, now)
            if not self.bill_repo.update_settlement(updated, bill.version):
                raise _StaleBill()
        self.user_repo.adjust_pending_amount(payment.user_id, -payment.amount)

    def record_payment(
        self,
        user_id: int | None,
        amount: int,
        method: PaymentMethod,
        bill_id: int | None = None,
        transaction_id: str = "",
        received_by: int | None = None,
        notes: str = "",
        status: PaymentStatus = PaymentStatus.COMPLETED,
        gateway_order_id: str = "",
        gateway_payment_id: str = "",
        gateway_signature: str = "",
        source: str = "",
        now: datetime | None = None,
    ) -> PaymentOutcome:
        require_positive_amount(amount)
        if status not in (PaymentStatus.COMPLETED, PaymentStatus.PENDING):
            raise ValidationError(f"A new payment cannot be {status.value}")
        bill, user_id = self._resolve_bill(bill_id, user_id)
        self._require_receiver(received_by)

        transaction_id = transaction_id or generate_transaction_id()
        if self.payment_repo.get_by_transaction_id(transaction_id) is not None:
            raise DuplicatePayment(f"Transaction {transaction_id} was already recorded")

        now = now or local_now()
        previous = serialize_bill_settlement(bill) if bill else None
        payment, bill = self._apply(
            Payment(
                user_id=user_id,
                bill_id=bill.id if bill else None,
                amount=amount,
                method=method,
                status=status,
                transaction_id=transaction_id,
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=gateway_signature,
                received_by=received_by,
                notes=notes,
                paid_at=now,
            ),
            bill,
            now,
        )
        logger.info(
            "Payment recorded: txn=%s user=%s bill=%s amount=%d method=%s status=%s",
            payment.transaction_id,
            user_id,
            payment.bill_id,
            amount,
            method.value,
            payment.status.value,
        )
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.PAYMENT_RECORD,
                actor_id=received_by,
                source=source,
                entity_type="payment",
                entity_id=payment.id,
                entity_uuid=payment.uuid,
                previous_state=previous,
                new_state=serialize_payment(payment),
                metadata={"bill": serialize_bill_settlement(bill)} if bill else {},
            )
        if payment.status == PaymentStatus.COMPLETED:
            self._notify_received(payment, bill)
        return PaymentOutcome(payment=payment, bill=bill)

    def _notify_received(self, payment: Payment, bill: Bill | None) -> None:
        if self.dispatcher is None:
            return
        if bill is not None:
            message = (
                f"{format_inr(payment.amount)} received for bill {bill.bill_number}. "
                f"Pending: {format_inr(bill.pending_amount)}"
            )
        else:
            message = f"{format_inr(payment.amount)} {payment.method.value} payment received. Thank you!"
        self.dispatcher.safe_dispatch(payment.user_id, "Payment Received", message, NotificationCategory.PAYMENT)

    def record_cash_payment(
        self,
        user_id: int,
        amount: int,
        bill_id: int | None = None,
        received_by: int | None = None,
        notes: str = "",
        source: str = "",
    ) -> PaymentOutcome:
        return self.record_payment(
            user_id,
            amount,
            PaymentMethod.CASH,
            bill_id=bill_id,
            received_by=received_by,
            notes=notes,
            source=source,
        )

    def verify_gateway_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        amount: int,
        bill_id: int | None = None,
        user_id: int | None = None,
        source: str = "",
    ) -> PaymentOutcome:
        """Check the gateway signature and only then record the payment."""
        if not order_id or not payment_id:
            raise ValidationError("Order id and payment id are required")
        if not verify_signature(settings.get_gateway_secret(), order_id, payment_id, signature):
            logger.warning("Rejected gateway payment: bad signature for order=%s", order_id)
            raise InvalidSignature("Invalid payment signature")

        outcome = self.record_payment(
            user_id,
            amount,
            PaymentMethod.RAZORPAY,
            bill_id=bill_id,
            transaction_id=payment_id,
            gateway_order_id=order_id,
            gateway_payment_id=payment_id,
            gateway_signature=signature,
            source=source,
        )
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.PAYMENT_VERIFY,
                source=source,
                entity_type="payment",
                entity_id=outcome.payment.id,
                entity_uuid=outcome.payment.uuid,
                metadata={"order_id": order_id, "payment_id": payment_id},
            )
        return outcome

    def create_order(self, amount: int, bill_id: int | None = None) -> dict:
        require_positive_amount(amount)
        if self.gateway is None:
            raise GatewayUnavailable("No payment gateway is configured")
        notes: dict = {}
        if bill_id is not None:
            bill = self.bill_repo.get_by_id(bill_id)
            if bill is None:
                raise NotFound(f"Bill {bill_id} not found")
            notes = {"billId": bill_id, "userId": bill.user_id}
        return self.gateway.create_order(amount, order_receipt(bill_id), notes)

    def update_status(
        self,
        payment_id: int,
        status: PaymentStatus,
        actor_id: int | None = None,
        source: str = "",
    ) -> PaymentOutcome:
        """Move a pending payment on. Completing it settles the bill and balance."""
        payment = self.get_payment(payment_id)
        if status not in STATUS_TRANSITIONS.get(payment.status, frozenset()):
            raise InvalidTransition(f"Payment cannot move from {payment.status.value} to {status.value}")

        bill = self.bill_repo.get_by_id(payment.bill_id) if payment.bill_id else None
        now = local_now()
        for _ in range(MAX_SETTLE_ATTEMPTS):
            try:
                with self.tx.atomic():
                    if not self.payment_repo.update_status(payment_id, status, payment.status):
                        raise InvalidTransition(f"Payment {payment_id} is no longer {payment.status.value}")
                    if status == PaymentStatus.COMPLETED:
                        self._settle(payment, bill, now)
            except _StaleBill:
                bill = self.bill_repo.get_by_id(bill.id) if bill else None
                continue
            break
        else:
            raise ConcurrentModification("Bill kept changing while the payment was applied")

        updated = self.get_payment(payment_id)
        bill = self.bill_repo.get_by_id(bill.id) if bill else None
        logger.info("Payment %s status: %s -> %s", payment.transaction_id, payment.status.value, status.value)
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.PAYMENT_STATUS,
                actor_id=actor_id,
                source=source,
                entity_type="payment",
                entity_id=payment_id,
                entity_uuid=payment.uuid,
                previous_state={"status": payment.status.value},
                new_state={"status": status.value},
            )
        if status == PaymentStatus.COMPLETED:
            self._notify_received(updated, bill)
        return PaymentOutcome(payment=updated, bill=bill)

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.payment_repo.get_by_id(payment_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found")
        return payment

    def list_payments(self, user_id: int | None = None, status: PaymentStatus | None = None) -> list[Payment]:
        return self.payment_repo.list_payments(user_id=user_id, status=status)
