from datetime import date, datetime
from decimal import Decimal

import pytest

from dairyledger.models.delivery import DeliveryStatus, SkippedBy


@pytest.fixture()
def customer_and_milk(repos, sample_customer, sample_product):
    milk = repos.products.create(sample_product())
    customer = repos.users.create(sample_customer())
    return customer, milk


class TestDeliveryRepo:
    def test_create_and_get(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        created = repos.deliveries.create(sample_delivery(customer.id, milk.id, quantity=Decimal("1.5")))

        assert created.id is not None
        assert created.delivery_date == date(2025, 3, 10)
        assert created.items[0].quantity == Decimal("1.5")
        assert created.items[0].total_price == 9000
        assert created.total_amount == 9000

    def test_list_for_user_between_filters_by_date_and_status(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, 1)))
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, 31)))
        repos.deliveries.create(
            sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, 15), status=DeliveryStatus.SKIPPED)
        )
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=date(2025, 4, 1)))

        start, end = datetime(2025, 3, 1), datetime(2025, 3, 31, 23, 59, 59)
        every = repos.deliveries.list_for_user_between(customer.id, start, end)
        delivered = repos.deliveries.list_for_user_between(customer.id, start, end, [DeliveryStatus.DELIVERED])

        assert [d.delivery_date.day for d in every] == [1, 15, 31]
        assert [d.delivery_date.day for d in delivered] == [1, 31]

    def test_count_for_user_between(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        for day in (2, 3):
            repos.deliveries.create(
                sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, day), status=DeliveryStatus.SKIPPED)
            )
        count = repos.deliveries.count_for_user_between(
            customer.id, datetime(2025, 3, 1), datetime(2025, 3, 31, 23, 59, 59), DeliveryStatus.SKIPPED
        )
        assert count == 2

    def test_exists_for_product(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, 5)))

        assert repos.deliveries.exists_for_product(customer.id, date(2025, 3, 5), milk.id)
        assert not repos.deliveries.exists_for_product(customer.id, date(2025, 3, 6), milk.id)
        assert not repos.deliveries.exists_for_product(customer.id, date(2025, 3, 5), milk.id + 1)

    def test_update_status_checks_expected(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        created = repos.deliveries.create(sample_delivery(customer.id, milk.id, status=DeliveryStatus.SCHEDULED))
        skipped = created.model_copy(
            update={"status": DeliveryStatus.SKIPPED, "skipped_by": SkippedBy.USER, "total_amount": 0}
        )

        assert repos.deliveries.update_status(skipped, DeliveryStatus.SCHEDULED)
        assert not repos.deliveries.update_status(skipped, DeliveryStatus.SCHEDULED)

        fetched = repos.deliveries.get_by_id(created.id)
        assert fetched.status == DeliveryStatus.SKIPPED
        assert fetched.skipped_by == SkippedBy.USER
        assert fetched.total_amount == 0

    def test_stats_for_day(self, repos, customer_and_milk, sample_delivery):
        customer, milk = customer_and_milk
        day = date(2025, 3, 10)
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=day))
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=day, quantity=Decimal("2")))
        repos.deliveries.create(
            sample_delivery(customer.id, milk.id, delivery_date=day, status=DeliveryStatus.SKIPPED, total_amount=0)
        )

        stats = repos.deliveries.stats_for_day(day)
        assert stats["delivered"] == {"count": 2, "total_amount": 18000}
        assert stats["skipped"]["count"] == 1
