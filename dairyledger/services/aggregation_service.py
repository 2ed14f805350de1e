from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from dairyledger.ledger import line_total
from dairyledger.models.bill import BillLineItem
from dairyledger.models.delivery import DeliveryStatus
from dairyledger.models.product import ProductUnit
from dairyledger.repositories.base import DeliveryRepository, ProductRepository

logger = logging.getLogger(__name__)


class ProductTotals(BaseModel):
    product_id: int
    product_name: str
    unit: ProductUnit = ProductUnit.LITRE
    price_per_unit: int  # last observed delivery price, paise
    total_quantity: Decimal = Decimal("0")
    total_amount: int = 0

    def to_line_item(self, sort_order: int) -> BillLineItem:
        return BillLineItem(
            product_id=self.product_id,
            product_name=self.product_name,
            unit=self.unit,
            total_quantity=self.total_quantity,
            price_per_unit=self.price_per_unit,
            total_amount=self.total_amount,
            sort_order=sort_order,
        )


class AggregationResult(BaseModel):
    user_id: int
    period_start: datetime
    period_end: datetime
    products: dict[int, ProductTotals] = {}
    total_litres: Decimal = Decimal("0")
    delivered_count: int = 0
    skipped_count: int = 0
    delivery_ids: list[int] = []

    @property
    def has_billable_activity(self) -> bool:
        return self.delivered_count > 0

    @property
    def subtotal(self) -> int:
        return sum(p.total_amount for p in self.products.values())

    def line_items(self) -> list[BillLineItem]:
        return [totals.to_line_item(i) for i, totals in enumerate(self.products.values())]


class DeliveryAggregator:
    def __init__(self, delivery_repo: DeliveryRepository, product_repo: ProductRepository) -> None:
        self.delivery_repo = delivery_repo
        self.product_repo = product_repo

    def aggregate(self, user_id: int, start: datetime, end: datetime) -> AggregationResult:
        """Collapse a customer's delivered items between ``start`` and ``end`` into per-product totals.

        Only delivered drops carry quantity and amount. Skipped drops are counted
        separately. Each line is priced at what was recorded on the delivery, so
        later price changes never reach an old period.
        """
        delivered = self.delivery_repo.list_for_user_between(user_id, start, end, [DeliveryStatus.DELIVERED])
        skipped_count = self.delivery_repo.count_for_user_between(user_id, start, end, DeliveryStatus.SKIPPED)

        result = AggregationResult(
            user_id=user_id,
            period_start=start,
            period_end=end,
            skipped_count=skipped_count,
        )
        if not delivered:
            logger.debug("No delivered items for user=%s between %s and %s", user_id, start, end)
            return result

        product_ids = sorted({pid for d in delivered for pid in d.product_ids})
        catalog = self.product_repo.get_many(product_ids)

        products: dict[int, ProductTotals] = {}
        delivery_ids: list[int] = []
        for delivery in delivered:
            if delivery.id is not None and delivery.id not in delivery_ids:
                delivery_ids.append(delivery.id)
            for item in delivery.items:
                product = catalog.get(item.product_id)
                totals = products.get(item.product_id)
                if totals is None:
                    totals = ProductTotals(
                        product_id=item.product_id,
                        product_name=product.name if product else f"Product #{item.product_id}",
                        unit=product.unit if product else ProductUnit.LITRE,
                        price_per_unit=item.price_per_unit,
                    )
                    products[item.product_id] = totals
                totals.total_quantity += item.quantity
                totals.total_amount += line_total(item.quantity, item.price_per_unit)
                totals.price_per_unit = item.price_per_unit

        result.products = products
        result.delivered_count = len(delivered)
        result.delivery_ids = delivery_ids
        result.total_litres = sum(
            (t.total_quantity for t in products.values() if t.unit == ProductUnit.LITRE),
            Decimal("0"),
        )
        logger.debug(
            "Aggregated user=%s: %d delivered, %d skipped, %d products",
            user_id,
            result.delivered_count,
            skipped_count,
            len(products),
        )
        return result
