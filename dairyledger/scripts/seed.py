"""Seed the database with demo data for local development.

Usage:
    python -m dairyledger.scripts.seed
"""

from __future__ import annotations

import calendar
import random
from datetime import date
from decimal import Decimal

from faker import Faker
from rich.console import Console
from rich.table import Table
from sqlalchemy import text

from dairyledger.constants import format_period, local_now
from dairyledger.db import get_connection, initialize_db
from dairyledger.models import format_inr
from dairyledger.models.delivery import DeliveryPaymentMethod, DeliveryStatus, TimeSlot
from dairyledger.models.product import Product, ProductCategory, ProductUnit
from dairyledger.models.user import (
    Subscription,
    SubscriptionItem,
    SubscriptionSlot,
    User,
    UserRole,
)
from dairyledger.repositories.factory import (
    get_bill_repository,
    get_delivery_repository,
    get_payment_repository,
    get_product_repository,
    get_transaction_manager,
    get_user_repository,
)
from dairyledger.services.aggregation_service import DeliveryAggregator
from dairyledger.services.bill_service import BillService
from dairyledger.services.delivery_service import DeliveryLine, DeliveryService
from dairyledger.services.payment_service import PaymentService

console = Console()
fake = Faker("en_IN")

NUM_CUSTOMERS = 12
SKIP_RATE = 0.08

TABLES_TO_TRUNCATE = [
    "audit_logs",
    "job_runs",
    "notifications",
    "payments",
    "bill_reminders",
    "bill_deliveries",
    "bill_items",
    "bills",
    "delivery_items",
    "deliveries",
    "subscription_items",
    "products",
    "users",
]

# (name, category, unit, price in paise)
PRODUCT_CATALOG = [
    ("Cow Milk", ProductCategory.MILK, ProductUnit.LITRE, 6000),
    ("Buffalo Milk", ProductCategory.MILK, ProductUnit.LITRE, 7500),
    ("Toned Milk", ProductCategory.MILK, ProductUnit.LITRE, 5400),
    ("Fresh Curd", ProductCategory.CURD, ProductUnit.KG, 9000),
    ("Buttermilk", ProductCategory.BUTTERMILK, ProductUnit.PACKET, 1500),
    ("Desi Ghee", ProductCategory.GHEE, ProductUnit.KG, 65000),
]

SKIP_REASONS = ["Out of town", "Guests brought milk", "Festival at relatives", ""]


def _truncate_all(conn) -> None:
    """Truncate all tables, disabling FK checks for MariaDB/MySQL."""
    console.print("\n[yellow]Truncating all tables...[/yellow]")
    sqlite = conn.dialect.name == "sqlite"
    if not sqlite:
        conn.execute(text("SET FOREIGN_KEY_CHECKS = 0"))
    for table in TABLES_TO_TRUNCATE:
        statement = f"DELETE FROM {table}" if sqlite else f"TRUNCATE TABLE {table}"
        conn.execute(text(statement))  # noqa: S608
        console.print(f"  Truncated [dim]{table}[/dim]")
    if not sqlite:
        conn.execute(text("SET FOREIGN_KEY_CHECKS = 1"))
    conn.commit()
    console.print("[green]All tables truncated.[/green]\n")


def _create_products(product_repo) -> list[Product]:
    console.print("[cyan]Creating products...[/cyan]")
    products = []
    for name, category, unit, price in PRODUCT_CATALOG:
        product = product_repo.create(Product(name=name, category=category, unit=unit, price_per_unit=price))
        console.print(f"  {product.name}: {format_inr(product.price_per_unit)}/{product.unit.value}")
        products.append(product)
    console.print(f"[green]{len(products)} products created.[/green]\n")
    return products


def _create_users(user_repo, products: list[Product]) -> tuple[User, User, list[User]]:
    console.print("[cyan]Creating users...[/cyan]")
    admin = user_repo.create(User(name="Farm Admin", email="admin@example.com", role=UserRole.ADMIN))
    labour = user_repo.create(User(name=fake.name(), phone=fake.phone_number(), role=UserRole.LABOUR))
    console.print(f"  [bold green]Admin:[/bold green] {admin.name} (id={admin.id})")
    console.print(f"  [bold green]Labour:[/bold green] {labour.name} (id={labour.id})")

    milks = [p for p in products if p.category == ProductCategory.MILK]
    extras = [p for p in products if p.category != ProductCategory.MILK]
    customers = []
    for _ in range(NUM_CUSTOMERS):
        items = [
            SubscriptionItem(
                product_id=random.choice(milks).id,
                quantity=Decimal(random.choice(["0.5", "1", "1.5", "2"])),
                delivery_time=random.choice(list(SubscriptionSlot)),
            )
        ]
        if random.random() > 0.6:
            items.append(SubscriptionItem(product_id=random.choice(extras).id, quantity=Decimal("1")))
        customer = user_repo.create(
            User(
                name=fake.name(),
                email=fake.email(),
                phone=fake.phone_number(),
                assigned_labour_id=labour.id,
                subscription=Subscription(start_date=date.today().replace(day=1), items=items),
            )
        )
        customers.append(customer)
        console.print(f"  Customer: {customer.name} (id={customer.id}, {len(items)} products)")
    console.print(f"[green]{len(customers)} customers created.[/green]\n")
    return admin, labour, customers


def _create_deliveries(delivery_service: DeliveryService, customers: list[User], labour: User, month: int, year: int):
    """Deliver every subscription for each day of the month, skipping a few."""
    console.print(f"[cyan]Creating deliveries for {format_period(month, year)}...[/cyan]")
    last_day = calendar.monthrange(year, month)[1]
    delivered = skipped = 0
    for customer in customers:
        for day in range(1, last_day + 1):
            for item in customer.subscription.items:
                delivery = delivery_service.create_delivery(
                    customer.id,
                    date(year, month, day),
                    [DeliveryLine(product_id=item.product_id, quantity=item.quantity)],
                    delivery_time=TimeSlot.EVENING if item.delivery_time == SubscriptionSlot.EVENING else TimeSlot.MORNING,
                    source="seed",
                )
                if random.random() < SKIP_RATE:
                    delivery_service.skip(delivery.id, random.choice(SKIP_REASONS), source="seed")
                    skipped += 1
                else:
                    delivery_service.update_status(
                        delivery.id,
                        DeliveryStatus.DELIVERED,
                        payment_method=DeliveryPaymentMethod.ONLINE,
                        actor_id=labour.id,
                        source="seed",
                    )
                    delivered += 1
    console.print(f"[green]{delivered} delivered, {skipped} skipped.[/green]\n")


def _create_bills(bill_service: BillService, payment_service: PaymentService, month: int, year: int) -> int:
    console.print(f"[cyan]Generating bills for {format_period(month, year)}...[/cyan]")
    result = bill_service.generate_all_bills(month, year, source="seed")

    table = Table(title="Bills generated")
    table.add_column("Number", style="bold")
    table.add_column("Customer", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Paid", justify="right")
    table.add_column("Status")

    for bill in bill_service.list_bills(month=month, year=year):
        roll = random.random()
        if roll > 0.6:
            bill = payment_service.record_cash_payment(bill.user_id, bill.total_amount, bill_id=bill.id).bill
        elif roll > 0.3:
            bill = payment_service.record_cash_payment(bill.user_id, bill.total_amount // 2, bill_id=bill.id).bill
        table.add_row(
            bill.bill_number,
            str(bill.user_id),
            format_inr(bill.total_amount),
            format_inr(bill.paid_amount),
            bill.status.value,
        )

    console.print(table)
    console.print(f"\n[green]{result['generated']} bills generated.[/green]\n")
    return result["generated"]


def main() -> None:
    console.print("[bold magenta]dairyledger: Database Seeder[/bold magenta]")
    console.print("=" * 40)

    initialize_db()
    conn = get_connection()

    # --- Truncate ---
    _truncate_all(conn)

    # --- Repositories & Services ---
    user_repo = get_user_repository()
    product_repo = get_product_repository()
    delivery_repo = get_delivery_repository()
    bill_repo = get_bill_repository()
    payment_repo = get_payment_repository()
    tx = get_transaction_manager()

    delivery_service = DeliveryService(delivery_repo, product_repo, user_repo)
    bill_service = BillService(
        bill_repo, user_repo, payment_repo, DeliveryAggregator(delivery_repo, product_repo), tx
    )
    payment_service = PaymentService(payment_repo, bill_repo, user_repo, tx)

    # --- Seed ---
    today = local_now()
    month, year = (12, today.year - 1) if today.month == 1 else (today.month - 1, today.year)
    products = _create_products(product_repo)
    admin, labour, customers = _create_users(user_repo, products)
    _create_deliveries(delivery_service, customers, labour, month, year)
    total_bills = _create_bills(bill_service, payment_service, month, year)

    # --- Summary ---
    console.print("[bold green]Seeding complete![/bold green]")
    console.print(f"  Products:  {len(products)}")
    console.print(f"  Customers: {len(customers)}")
    console.print(f"  Bills:     {total_bills}")
    console.print(f"\n  Admin id: [bold]{admin.id}[/bold] (send as X-Actor-Id)")


if __name__ == "__main__":  # pragma: no cover
    main()
