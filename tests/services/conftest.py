from datetime import date
from decimal import Decimal

import pytest

from dairyledger.models.delivery import DeliveryStatus
from dairyledger.services.aggregation_service import DeliveryAggregator
from dairyledger.services.audit_service import AuditService
from dairyledger.services.bill_service import BillService
from dairyledger.services.delivery_service import DeliveryService
from dairyledger.services.jobs import BillingJobs
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.services.payment_service import PaymentService


@pytest.fixture()
def audit(repos) -> AuditService:
    return AuditService(repos.audit_logs)


@pytest.fixture()
def dispatcher(repos) -> NotificationDispatcher:
    return NotificationDispatcher(repos.notifications, repos.users)


@pytest.fixture()
def aggregator(repos) -> DeliveryAggregator:
    return DeliveryAggregator(repos.deliveries, repos.products)


@pytest.fixture()
def bill_service(repos, aggregator, dispatcher, audit) -> BillService:
    return BillService(
        repos.bills, repos.users, repos.payments, aggregator, repos.tx, dispatcher=dispatcher, audit=audit
    )


@pytest.fixture()
def payment_service(repos, dispatcher, audit) -> PaymentService:
    return PaymentService(repos.payments, repos.bills, repos.users, repos.tx, dispatcher=dispatcher, audit=audit)


@pytest.fixture()
def delivery_service(repos, dispatcher, audit) -> DeliveryService:
    return DeliveryService(repos.deliveries, repos.products, repos.users, dispatcher=dispatcher, audit=audit)


@pytest.fixture()
def billing_jobs(repos, dispatcher, audit) -> BillingJobs:
    return BillingJobs(repos.users, repos.products, repos.deliveries, repos.bills, dispatcher, audit=audit)


@pytest.fixture()
def milk(repos, sample_product):
    return repos.products.create(sample_product())


@pytest.fixture()
def customer(repos, sample_customer, milk):
    return repos.users.create(sample_customer(product_ids=[milk.id]))


@pytest.fixture()
def deliver(repos, sample_delivery):
    """Record a delivered (or otherwise finished) drop on a March 2025 day."""

    def _deliver(user, product, day: int, quantity="1", status=DeliveryStatus.DELIVERED, price=None):
        overrides = {"delivery_date": date(2025, 3, day), "quantity": Decimal(quantity), "status": status}
        overrides["price_per_unit"] = product.price_per_unit if price is None else price
        if status != DeliveryStatus.DELIVERED:
            overrides["delivered_at"] = None
        return repos.deliveries.create(sample_delivery(user.id, product.id, **overrides))

    return _deliver
