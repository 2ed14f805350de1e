from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from dairyledger.constants import local_now
from dairyledger.errors import InvalidTransition, NotFound, ValidationError
from dairyledger.ledger import line_total, to_quantity
from dairyledger.models import format_inr
from dairyledger.models.audit_log import AuditEventType
from dairyledger.models.delivery import (
    Delivery,
    DeliveryItem,
    DeliveryPaymentMethod,
    DeliveryPaymentStatus,
    DeliveryStatus,
    SkippedBy,
    TimeSlot,
    can_transition,
)
from dairyledger.models.notification import NotificationCategory
from dairyledger.models.product import ProductUnit
from dairyledger.repositories.base import DeliveryRepository, ProductRepository, UserRepository
from dairyledger.services.audit_serializers import serialize_delivery
from dairyledger.services.audit_service import AuditService
from dairyledger.services.bill_service import billing_period, validate_period
from dairyledger.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

OPERATOR_TARGETS = (DeliveryStatus.DELIVERED, DeliveryStatus.SKIPPED, DeliveryStatus.CANCELLED)


class DeliveryLine(BaseModel):
    product_id: int
    quantity: Decimal
    price_per_unit: int | None = None  # defaults to the product's current price


class MonthlyHistory(BaseModel):
    month: int
    year: int
    total_deliveries: int = 0
    delivered: int = 0
    skipped: int = 0
    total_litres: Decimal = Decimal("0")
    total_amount: int = 0
    deliveries: list[Delivery] = []


class DeliveryService:
    def __init__(
        self,
        delivery_repo: DeliveryRepository,
        product_repo: ProductRepository,
        user_repo: UserRepository,
        dispatcher: NotificationDispatcher | None = None,
        audit: AuditService | None = None,
    ) -> None:
        self.delivery_repo = delivery_repo
        self.product_repo = product_repo
        self.user_repo = user_repo
        self.dispatcher = dispatcher
        self.audit = audit

    def create_delivery(
        self,
        user_id: int,
        delivery_date: date,
        lines: list[DeliveryLine],
        delivery_time: TimeSlot = TimeSlot.MORNING,
        labour_id: int | None = None,
        route_id: int | None = None,
        notes: str = "",
        actor_id: int | None = None,
        source: str = "",
    ) -> Delivery:
        if not lines:
            raise ValidationError("A delivery needs at least one item")
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFound(f"Customer {user_id} not found")
        if labour_id is not None and self.user_repo.get_by_id(labour_id) is None:
            raise NotFound(f"Delivery person {labour_id} not found")

        catalog = self.product_repo.get_many([line.product_id for line in lines])
        items: list[DeliveryItem] = []
        for i, line in enumerate(lines):
            product = catalog.get(line.product_id)
            if product is None:
                raise NotFound(f"Product {line.product_id} not found")
            quantity = to_quantity(line.quantity)
            price = product.price_per_unit if line.price_per_unit is None else line.price_per_unit
            if price < 0:
                raise ValidationError("Unit price cannot be negative")
            items.append(
                DeliveryItem(
                    product_id=product.id,
                    quantity=quantity,
                    price_per_unit=price,
                    total_price=line_total(quantity, price),
                    sort_order=i,
                )
            )

        delivery = self.delivery_repo.create(
            Delivery(
                user_id=user_id,
                labour_id=labour_id if labour_id is not None else user.assigned_labour_id,
                route_id=route_id if route_id is not None else user.assigned_route_id,
                delivery_date=delivery_date,
                delivery_time=delivery_time,
                items=items,
                total_amount=sum(item.total_price for item in items),
                status=DeliveryStatus.SCHEDULED,
                notes=notes,
            )
        )
        logger.info(
            "Delivery scheduled: id=%s user=%s date=%s total=%d",
            delivery.id,
            user_id,
            delivery.delivery_date,
            delivery.total_amount,
        )
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.DELIVERY_CREATE,
                actor_id=actor_id,
                source=source,
                entity_type="delivery",
                entity_id=delivery.id,
                entity_uuid=delivery.uuid,
                new_state=serialize_delivery(delivery),
            )
        return delivery

    def get_delivery(self, delivery_id: int) -> Delivery:
        delivery = self.delivery_repo.get_by_id(delivery_id)
        if delivery is None:
            raise NotFound(f"Delivery {delivery_id} not found")
        return delivery

    def _actor_role(self, actor_id: int | None, default: SkippedBy) -> SkippedBy:
        if actor_id is None:
            return default
        actor = self.user_repo.get_by_id(actor_id)
        if actor is None:
            return default
        return SkippedBy(actor.role.value)

    def _transition(
        self,
        delivery: Delivery,
        updated: Delivery,
        actor_id: int | None,
        source: str,
    ) -> Delivery:
        if not can_transition(delivery.status, updated.status):
            raise InvalidTransition(
                f"Delivery {delivery.id} cannot move from {delivery.status.value} to {updated.status.value}"
            )
        if not self.delivery_repo.update_status(updated, delivery.status):
            raise InvalidTransition(f"Delivery {delivery.id} is no longer {delivery.status.value}")
        result = self.get_delivery(delivery.id)
        logger.info("Delivery %s: %s -> %s", delivery.id, delivery.status.value, result.status.value)
        if self.audit is not None:
            self.audit.safe_log(
                AuditEventType.DELIVERY_STATUS,
                actor_id=actor_id,
                source=source,
                entity_type="delivery",
                entity_id=delivery.id,
                entity_uuid=delivery.uuid,
                previous_state=serialize_delivery(delivery),
                new_state=serialize_delivery(result),
            )
        return result

    def update_status(
        self,
        delivery_id: int,
        status: DeliveryStatus,
        skip_reason: str = "",
        payment_method: DeliveryPaymentMethod | None = None,
        actor_id: int | None = None,
        source: str = "",
    ) -> Delivery:
        """Operator transition to delivered, skipped or cancelled."""
        if status not in OPERATOR_TARGETS:
            raise ValidationError(f"Status must be one of: {', '.join(s.value for s in OPERATOR_TARGETS)}")
        delivery = self.get_delivery(delivery_id)

        changes: dict = {"status": status}
        if status == DeliveryStatus.DELIVERED:
            changes["delivered_at"] = local_now()
            if payment_method is not None:
                changes["payment_method"] = payment_method
                if payment_method == DeliveryPaymentMethod.CASH:
                    changes["payment_status"] = DeliveryPaymentStatus.PAID
        elif status == DeliveryStatus.SKIPPED:
            changes["skip_reason"] = skip_reason
            changes["skipped_by"] = self._actor_role(actor_id, SkippedBy.LABOUR)
            changes["total_amount"] = 0

        result = self._transition(delivery, delivery.model_copy(update=changes), actor_id, source)
        self._notify_status(result, skip_reason)
        return result

    def skip(
        self,
        delivery_id: int,
        reason: str = "",
        user_id: int | None = None,
        actor_id: int | None = None,
        source: str = "",
    ) -> Delivery:
        """Customer-initiated skip, allowed while the drop is scheduled or pending."""
        delivery = self.get_delivery(delivery_id)
        if user_id is not None and delivery.user_id != user_id:
            raise NotFound(f"Delivery {delivery_id} not found")
        if delivery.status not in (DeliveryStatus.SCHEDULED, DeliveryStatus.PENDING):
            raise InvalidTransition("Cannot skip this delivery")
        updated = delivery.model_copy(
            update={
                "status": DeliveryStatus.SKIPPED,
                "skip_reason": reason,
                "skipped_by": self._actor_role(actor_id, SkippedBy.USER),
                "total_amount": 0,
            }
        )
        return self._transition(delivery, updated, actor_id, source)

    def confirm(
        self,
        delivery_id: int,
        user_id: int | None = None,
        actor_id: int | None = None,
        source: str = "",
    ) -> Delivery:
        delivery = self.get_delivery(delivery_id)
        if user_id is not None and delivery.user_id != user_id:
            raise NotFound(f"Delivery {delivery_id} not found")
        if delivery.status != DeliveryStatus.SCHEDULED:
            raise InvalidTransition("Only scheduled deliveries can be confirmed")
        return self._transition(
            delivery, delivery.model_copy(update={"status": DeliveryStatus.PENDING}), actor_id, source
        )

    def cancel(self, delivery_id: int, actor_id: int | None = None, source: str = "") -> Delivery:
        return self.update_status(delivery_id, DeliveryStatus.CANCELLED, actor_id=actor_id, source=source)

    def _notify_status(self, delivery: Delivery, skip_reason: str) -> None:
        if self.dispatcher is None:
            return
        if delivery.status == DeliveryStatus.DELIVERED:
            title = "Delivery Complete"
            message = f"Your milk has been delivered! Amount: {format_inr(delivery.total_amount)}"
        elif delivery.status == DeliveryStatus.SKIPPED:
            title = "Delivery Skipped"
            message = f"Today's delivery has been skipped. Reason: {skip_reason or 'Not specified'}"
        else:
            return
        self.dispatcher.safe_dispatch(delivery.user_id, title, message, NotificationCategory.DELIVERY)

    def monthly_history(self, user_id: int, month: int, year: int) -> MonthlyHistory:
        validate_period(month, year)
        start, end = billing_period(month, year)
        deliveries = self.delivery_repo.list_for_user_between(user_id, start, end)
        catalog = self.product_repo.get_many([pid for d in deliveries for pid in d.product_ids])

        history = MonthlyHistory(month=month, year=year, total_deliveries=len(deliveries), deliveries=deliveries)
        for delivery in deliveries:
            if delivery.status == DeliveryStatus.SKIPPED:
                history.skipped += 1
            if delivery.status != DeliveryStatus.DELIVERED:
                continue
            history.delivered += 1
            history.total_amount += delivery.total_amount
            for item in delivery.items:
                product = catalog.get(item.product_id)
                if product is None or product.unit == ProductUnit.LITRE:
                    history.total_litres += item.quantity
        logger.debug("Monthly history user=%s %d-%02d: %d deliveries", user_id, year, month, len(deliveries))
        return history
