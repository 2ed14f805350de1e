from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Connection, CursorResult, TextClause, text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from ulid import ULID

from dairyledger.constants import local_now
from dairyledger.models.audit_log import AuditLog
from dairyledger.models.bill import (
    OPEN_STATUSES,
    Bill,
    BillLineItem,
    BillReminder,
    BillStatus,
    ReminderChannel,
    ReminderKind,
)
from dairyledger.models.delivery import (
    Delivery,
    DeliveryItem,
    DeliveryPaymentMethod,
    DeliveryPaymentStatus,
    DeliveryStatus,
    SkippedBy,
    TimeSlot,
)
from dairyledger.models.job_run import JobRun, JobRunStatus
from dairyledger.models.notification import (
    ChannelResult,
    Notification,
    NotificationCategory,
    NotificationPriority,
)
from dairyledger.models.payment import Payment, PaymentMethod, PaymentStatus
from dairyledger.models.product import Product, ProductCategory, ProductUnit
from dairyledger.models.user import (
    NotificationPreferences,
    Subscription,
    SubscriptionItem,
    SubscriptionPlan,
    SubscriptionSlot,
    User,
    UserRole,
)
from dairyledger.repositories.base import (
    AuditLogRepository,
    BillRepository,
    DeliveryRepository,
    DuplicateRecordError,
    JobRunRepository,
    NotificationRepository,
    PaymentRepository,
    ProductRepository,
    TransactionManager,
    UserRepository,
)

_TX_DEPTH = "dairyledger.tx_depth"


def _now() -> datetime:
    return local_now()


def _as_date(value: date) -> date:
    """Date columns are compared against plain dates, never datetimes."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _in_clause(prefix: str, values: list) -> tuple[str, dict[str, Any]]:
    placeholders = ", ".join(f":{prefix}{i}" for i in range(len(values)))
    params = {f"{prefix}{i}": v for i, v in enumerate(values)}
    return placeholders, params


class SQLAlchemyTransactionManager(TransactionManager):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @contextmanager
    def atomic(self) -> Iterator[None]:
        depth = self.conn.info.get(_TX_DEPTH, 0)
        self.conn.info[_TX_DEPTH] = depth + 1
        try:
            yield
        except BaseException:
            self.conn.info[_TX_DEPTH] = depth
            if depth == 0:
                self.conn.rollback()
            raise
        self.conn.info[_TX_DEPTH] = depth
        if depth == 0:
            self.conn.commit()


_MYSQL_DUP_ENTRY = 1062


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for duplicate-key errors, False for foreign key, NOT NULL and CHECK failures."""
    orig = exc.orig
    args = getattr(orig, "args", ())
    if args and args[0] == _MYSQL_DUP_ENTRY:
        return True
    return "UNIQUE constraint failed" in str(orig)


class _SQLAlchemyRepository:
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def _in_transaction(self) -> bool:
        return self.conn.info.get(_TX_DEPTH, 0) > 0

    def _commit(self) -> None:
        if not self._in_transaction():
            self.conn.commit()

    def _execute_unique(self, statement: TextClause, params: dict[str, Any]) -> CursorResult:
        try:
            return self.conn.execute(statement, params)
        except IntegrityError as exc:
            if not self._in_transaction():
                self.conn.rollback()
            if not is_unique_violation(exc):
                raise
            raise DuplicateRecordError(str(exc.orig)) from exc


class SQLAlchemyUserRepository(_SQLAlchemyRepository, UserRepository):
    def create(self, user: User) -> User:
        result = self.conn.execute(
            text(
                "INSERT INTO users (uuid, name, email, phone, role, is_active, pending_amount, "
                "notify_sms, notify_email, notify_push, subscription_active, subscription_plan, "
                "subscription_start, assigned_labour_id, assigned_route_id, created_at) "
                "VALUES (:uuid, :name, :email, :phone, :role, :is_active, :pending_amount, "
                ":notify_sms, :notify_email, :notify_push, :subscription_active, :subscription_plan, "
                ":subscription_start, :assigned_labour_id, :assigned_route_id, :created_at)"
            ),
            {
                "uuid": str(ULID()),
                "name": user.name,
                "email": user.email,
                "phone": user.phone,
                "role": user.role.value,
                "is_active": user.is_active,
                "pending_amount": user.pending_amount,
                "notify_sms": user.notification_preferences.sms,
                "notify_email": user.notification_preferences.email,
                "notify_push": user.notification_preferences.push,
                "subscription_active": user.subscription.is_active,
                "subscription_plan": user.subscription.plan.value,
                "subscription_start": user.subscription.start_date,
                "assigned_labour_id": user.assigned_labour_id,
                "assigned_route_id": user.assigned_route_id,
                "created_at": _now(),
            },
        )
        user_id = result.lastrowid
        for i, item in enumerate(user.subscription.items):
            self.conn.execute(
                text(
                    "INSERT INTO subscription_items (user_id, product_id, quantity, delivery_time, sort_order) "
                    "VALUES (:user_id, :product_id, :quantity, :delivery_time, :sort_order)"
                ),
                {
                    "user_id": user_id,
                    "product_id": item.product_id,
                    "quantity": str(item.quantity),
                    "delivery_time": item.delivery_time.value,
                    "sort_order": i,
                },
            )
        self._commit()
        created = self.get_by_id(user_id)
        if created is None:
            raise RuntimeError(f"Failed to retrieve user after create (id={user_id})")
        return created

    @staticmethod
    def _build_user(row: RowMapping, item_rows: list[RowMapping]) -> User:
        return User(
            id=row["id"],
            uuid=row["uuid"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            role=UserRole(row["role"]),
            is_active=bool(row["is_active"]),
            pending_amount=row["pending_amount"],
            notification_preferences=NotificationPreferences(
                sms=bool(row["notify_sms"]),
                email=bool(row["notify_email"]),
                push=bool(row["notify_push"]),
            ),
            subscription=Subscription(
                is_active=bool(row["subscription_active"]),
                plan=SubscriptionPlan(row["subscription_plan"]),
                start_date=row["subscription_start"],
                items=[
                    SubscriptionItem(
                        id=item_row["id"],
                        user_id=item_row["user_id"],
                        product_id=item_row["product_id"],
                        quantity=_decimal(item_row["quantity"]),
                        delivery_time=SubscriptionSlot(item_row["delivery_time"]),
                        sort_order=item_row["sort_order"],
                    )
                    for item_row in item_rows
                ],
            ),
            assigned_labour_id=row["assigned_labour_id"],
            assigned_route_id=row["assigned_route_id"],
            created_at=row["created_at"],
        )

    def _build_users_from_rows(self, rows: list[RowMapping]) -> list[User]:
        if not rows:
            return []
        placeholders, params = _in_clause("id", [row["id"] for row in rows])
        all_items = (
            self.conn.execute(
                text(f"SELECT * FROM subscription_items WHERE user_id IN ({placeholders}) ORDER BY sort_order"),
                params,
            )
            .mappings()
            .fetchall()
        )
        items_by_user: dict[int, list[RowMapping]] = {}
        for item_row in all_items:
            items_by_user.setdefault(item_row["user_id"], []).append(item_row)
        return [self._build_user(row, items_by_user.get(row["id"], [])) for row in rows]

    def get_by_id(self, user_id: int) -> User | None:
        row = self.conn.execute(text("SELECT * FROM users WHERE id = :id"), {"id": user_id}).mappings().fetchone()
        if row is None:
            return None
        return self._build_users_from_rows([row])[0]

    def list_active_customers(self) -> list[User]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM users WHERE role = :role AND is_active = 1 ORDER BY id"),
                {"role": UserRole.CUSTOMER.value},
            )
            .mappings()
            .fetchall()
        )
        return self._build_users_from_rows(list(rows))

    def list_subscribed_customers(self) -> list[User]:
        rows = (
            self.conn.execute(
                text(
                    "SELECT * FROM users WHERE role = :role AND is_active = 1 "
                    "AND subscription_active = 1 ORDER BY id"
                ),
                {"role": UserRole.CUSTOMER.value},
            )
            .mappings()
            .fetchall()
        )
        return self._build_users_from_rows(list(rows))

    def list_admins(self) -> list[User]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM users WHERE role = :role AND is_active = 1 ORDER BY id"),
                {"role": UserRole.ADMIN.value},
            )
            .mappings()
            .fetchall()
        )
        return self._build_users_from_rows(list(rows))

    def adjust_pending_amount(self, user_id: int, delta: int) -> None:
        self.conn.execute(
            text(
                "UPDATE users SET pending_amount = CASE "
                "WHEN pending_amount + :delta < 0 THEN 0 ELSE pending_amount + :delta END "
                "WHERE id = :id"
            ),
            {"delta": delta, "id": user_id},
        )
        self._commit()

    def set_pending_amount(self, user_id: int, amount: int) -> None:
        self.conn.execute(
            text("UPDATE users SET pending_amount = :amount WHERE id = :id"),
            {"amount": amount, "id": user_id},
        )
        self._commit()


class SQLAlchemyProductRepository(_SQLAlchemyRepository, ProductRepository):
    @staticmethod
    def _row_to_product(row: RowMapping) -> Product:
        return Product(
            id=row["id"],
            uuid=row["uuid"],
            name=row["name"],
            category=ProductCategory(row["category"]),
            unit=ProductUnit(row["unit"]),
            price_per_unit=row["price_per_unit"],
            is_available=bool(row["is_available"]),
            created_at=row["created_at"],
        )

    def create(self, product: Product) -> Product:
        result = self.conn.execute(
            text(
                "INSERT INTO products (uuid, name, category, unit, price_per_unit, is_available, created_at) "
                "VALUES (:uuid, :name, :category, :unit, :price_per_unit, :is_available, :created_at)"
            ),
            {
                "uuid": str(ULID()),
                "name": product.name,
                "category": product.category.value,
                "unit": product.unit.value,
                "price_per_unit": product.price_per_unit,
                "is_available": product.is_available,
                "created_at": _now(),
            },
        )
        self._commit()
        created = self.get_by_id(result.lastrowid)
        if created is None:
            raise RuntimeError(f"Failed to retrieve product after create (id={result.lastrowid})")
        return created

    def get_by_id(self, product_id: int) -> Product | None:
        row = self.conn.execute(text("SELECT * FROM products WHERE id = :id"), {"id": product_id}).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_product(row)

    def get_many(self, product_ids: list[int]) -> dict[int, Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        placeholders, params = _in_clause("id", ids)
        rows = (
            self.conn.execute(text(f"SELECT * FROM products WHERE id IN ({placeholders})"), params)
            .mappings()
            .fetchall()
        )
        return {row["id"]: self._row_to_product(row) for row in rows}

    def list_all(self) -> list[Product]:
        rows = self.conn.execute(text("SELECT * FROM products ORDER BY name")).mappings().fetchall()
        return [self._row_to_product(row) for row in rows]


class SQLAlchemyDeliveryRepository(_SQLAlchemyRepository, DeliveryRepository):
    def create(self, delivery: Delivery) -> Delivery:
        now = _now()
        result = self.conn.execute(
            text(
                "INSERT INTO deliveries (uuid, user_id, labour_id, route_id, delivery_date, delivery_time, "
                "total_amount, status, skip_reason, skipped_by, delivered_at, payment_status, payment_method, "
                "notes, created_at, updated_at) "
                "VALUES (:uuid, :user_id, :labour_id, :route_id, :delivery_date, :delivery_time, "
                ":total_amount, :status, :skip_reason, :skipped_by, :delivered_at, :payment_status, "
                ":payment_method, :notes, :created_at, :updated_at)"
            ),
            {
                "uuid": str(ULID()),
                "user_id": delivery.user_id,
                "labour_id": delivery.labour_id,
                "route_id": delivery.route_id,
                "delivery_date": delivery.delivery_date,
                "delivery_time": delivery.delivery_time.value,
                "total_amount": delivery.total_amount,
                "status": delivery.status.value,
                "skip_reason": delivery.skip_reason,
                "skipped_by": delivery.skipped_by.value if delivery.skipped_by else None,
                "delivered_at": delivery.delivered_at,
                "payment_status": delivery.payment_status.value,
                "payment_method": delivery.payment_method.value,
                "notes": delivery.notes,
                "created_at": now,
                "updated_at": now,
            },
        )
        delivery_id = result.lastrowid
        for i, item in enumerate(delivery.items):
            self.conn.execute(
                text(
                    "INSERT INTO delivery_items (delivery_id, product_id, quantity, price_per_unit, "
                    "total_price, sort_order) "
                    "VALUES (:delivery_id, :product_id, :quantity, :price_per_unit, :total_price, :sort_order)"
                ),
                {
                    "delivery_id": delivery_id,
                    "product_id": item.product_id,
                    "quantity": str(item.quantity),
                    "price_per_unit": item.price_per_unit,
                    "total_price": item.total_price,
                    "sort_order": i,
                },
            )
        self._commit()
        created = self.get_by_id(delivery_id)
        if created is None:
            raise RuntimeError(f"Failed to retrieve delivery after create (id={delivery_id})")
        return created

    @staticmethod
    def _build_delivery(row: RowMapping, item_rows: list[RowMapping]) -> Delivery:
        return Delivery(
            id=row["id"],
            uuid=row["uuid"],
            user_id=row["user_id"],
            labour_id=row["labour_id"],
            route_id=row["route_id"],
            delivery_date=row["delivery_date"],
            delivery_time=TimeSlot(row["delivery_time"]),
            items=[
                DeliveryItem(
                    id=item_row["id"],
                    delivery_id=item_row["delivery_id"],
                    product_id=item_row["product_id"],
                    quantity=_decimal(item_row["quantity"]),
                    price_per_unit=item_row["price_per_unit"],
                    total_price=item_row["total_price"],
                    sort_order=item_row["sort_order"],
                )
                for item_row in item_rows
            ],
            total_amount=row["total_amount"],
            status=DeliveryStatus(row["status"]),
            skip_reason=row["skip_reason"] or "",
            skipped_by=SkippedBy(row["skipped_by"]) if row["skipped_by"] else None,
            delivered_at=row["delivered_at"],
            payment_status=DeliveryPaymentStatus(row["payment_status"]),
            payment_method=DeliveryPaymentMethod(row["payment_method"]),
            notes=row["notes"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _build_deliveries_from_rows(self, rows: list[RowMapping]) -> list[Delivery]:
        if not rows:
            return []
        placeholders, params = _in_clause("id", [row["id"] for row in rows])
        all_items = (
            self.conn.execute(
                text(f"SELECT * FROM delivery_items WHERE delivery_id IN ({placeholders}) ORDER BY sort_order"),
                params,
            )
            .mappings()
            .fetchall()
        )
        items_by_delivery: dict[int, list[RowMapping]] = {}
        for item_row in all_items:
            items_by_delivery.setdefault(item_row["delivery_id"], []).append(item_row)
        return [self._build_delivery(row, items_by_delivery.get(row["id"], [])) for row in rows]

    def get_by_id(self, delivery_id: int) -> Delivery | None:
        row = (
            self.conn.execute(text("SELECT * FROM deliveries WHERE id = :id"), {"id": delivery_id})
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._build_deliveries_from_rows([row])[0]

    def list_for_user_between(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        statuses: list[DeliveryStatus] | None = None,
    ) -> list[Delivery]:
        sql = "SELECT * FROM deliveries WHERE user_id = :user_id AND delivery_date >= :start AND delivery_date <= :end"
        params: dict[str, Any] = {"user_id": user_id, "start": _as_date(start), "end": _as_date(end)}
        if statuses:
            placeholders, status_params = _in_clause("status", [s.value for s in statuses])
            sql += f" AND status IN ({placeholders})"
            params.update(status_params)
        sql += " ORDER BY delivery_date, id"
        rows = self.conn.execute(text(sql), params).mappings().fetchall()
        return self._build_deliveries_from_rows(list(rows))

    def count_for_user_between(self, user_id: int, start: datetime, end: datetime, status: DeliveryStatus) -> int:
        row = self.conn.execute(
            text(
                "SELECT COUNT(*) FROM deliveries WHERE user_id = :user_id "
                "AND delivery_date >= :start AND delivery_date <= :end AND status = :status"
            ),
            {"user_id": user_id, "start": _as_date(start), "end": _as_date(end), "status": status.value},
        ).fetchone()
        return int(row[0]) if row else 0

    def exists_for_product(self, user_id: int, delivery_date: date, product_id: int) -> bool:
        row = self.conn.execute(
            text(
                "SELECT 1 FROM deliveries d JOIN delivery_items i ON i.delivery_id = d.id "
                "WHERE d.user_id = :user_id AND d.delivery_date = :delivery_date "
                "AND i.product_id = :product_id LIMIT 1"
            ),
            {"user_id": user_id, "delivery_date": _as_date(delivery_date), "product_id": product_id},
        ).fetchone()
        return row is not None

    def update_status(self, delivery: Delivery, expected_status: DeliveryStatus) -> bool:
        result = self.conn.execute(
            text(
                "UPDATE deliveries SET status = :status, skip_reason = :skip_reason, skipped_by = :skipped_by, "
                "delivered_at = :delivered_at, payment_status = :payment_status, "
                "payment_method = :payment_method, total_amount = :total_amount, updated_at = :updated_at "
                "WHERE id = :id AND status = :expected"
            ),
            {
                "status": delivery.status.value,
                "skip_reason": delivery.skip_reason,
                "skipped_by": delivery.skipped_by.value if delivery.skipped_by else None,
                "delivered_at": delivery.delivered_at,
                "payment_status": delivery.payment_status.value,
                "payment_method": delivery.payment_method.value,
                "total_amount": delivery.total_amount,
                "updated_at": _now(),
                "id": delivery.id,
                "expected": expected_status.value,
            },
        )
        self._commit()
        return result.rowcount == 1

    def stats_for_day(self, day: date) -> dict[str, dict[str, int]]:
        rows = self.conn.execute(
            text(
                "SELECT status, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS total_amount "
                "FROM deliveries WHERE delivery_date = :day GROUP BY status"
            ),
            {"day": _as_date(day)},
        ).mappings()
        return {row["status"]: {"count": int(row["count"]), "total_amount": int(row["total_amount"])} for row in rows}


class SQLAlchemyBillRepository(_SQLAlchemyRepository, BillRepository):
    def create(self, bill: Bill) -> Bill:
        now = _now()
        result = self._execute_unique(
            text(
                "INSERT INTO bills (uuid, bill_number, user_id, month, year, period_start, period_end, "
                "total_litres, total_deliveries, skipped_deliveries, subtotal, discount, tax, total_amount, "
                "paid_amount, pending_amount, status, due_date, sent_at, version, created_at, updated_at) "
                "VALUES (:uuid, :bill_number, :user_id, :month, :year, :period_start, :period_end, "
                ":total_litres, :total_deliveries, :skipped_deliveries, :subtotal, :discount, :tax, "
                ":total_amount, :paid_amount, :pending_amount, :status, :due_date, :sent_at, 0, "
                ":created_at, :updated_at)"
            ),
            {
                "uuid": str(ULID()),
                "bill_number": bill.bill_number,
                "user_id": bill.user_id,
                "month": bill.month,
                "year": bill.year,
                "period_start": bill.period_start,
                "period_end": bill.period_end,
                "total_litres": str(bill.total_litres),
                "total_deliveries": bill.total_deliveries,
                "skipped_deliveries": bill.skipped_deliveries,
                "subtotal": bill.subtotal,
                "discount": bill.discount,
                "tax": bill.tax,
                "total_amount": bill.total_amount,
                "paid_amount": bill.paid_amount,
                "pending_amount": bill.pending_amount,
                "status": bill.status.value,
                "due_date": bill.due_date,
                "sent_at": bill.sent_at,
                "created_at": now,
                "updated_at": now,
            },
        )
        bill_id = result.lastrowid
        for i, item in enumerate(bill.line_items):
            self.conn.execute(
                text(
                    "INSERT INTO bill_items (bill_id, product_id, product_name, unit, total_quantity, "
                    "price_per_unit, total_amount, sort_order) "
                    "VALUES (:bill_id, :product_id, :product_name, :unit, :total_quantity, "
                    ":price_per_unit, :total_amount, :sort_order)"
                ),
                {
                    "bill_id": bill_id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "unit": item.unit.value,
                    "total_quantity": str(item.total_quantity),
                    "price_per_unit": item.price_per_unit,
                    "total_amount": item.total_amount,
                    "sort_order": i,
                },
            )
        for delivery_id in dict.fromkeys(bill.delivery_ids):
            self.conn.execute(
                text("INSERT INTO bill_deliveries (bill_id, delivery_id) VALUES (:bill_id, :delivery_id)"),
                {"bill_id": bill_id, "delivery_id": delivery_id},
            )
        self._commit()
        created = self.get_by_id(bill_id)
        if created is None:
            raise RuntimeError(f"Failed to retrieve bill after create (id={bill_id})")
        return created

    @staticmethod
    def _build_bill(
        row: RowMapping,
        item_rows: list[RowMapping],
        delivery_ids: list[int],
        reminder_rows: list[RowMapping],
    ) -> Bill:
        return Bill(
            id=row["id"],
            uuid=row["uuid"],
            bill_number=row["bill_number"],
            user_id=row["user_id"],
            month=row["month"],
            year=row["year"],
            period_start=row["period_start"],
            period_end=row["period_end"],
            delivery_ids=delivery_ids,
            line_items=[
                BillLineItem(
                    id=item_row["id"],
                    bill_id=item_row["bill_id"],
                    product_id=item_row["product_id"],
                    product_name=item_row["product_name"],
                    unit=ProductUnit(item_row["unit"]),
                    total_quantity=_decimal(item_row["total_quantity"]),
                    price_per_unit=item_row["price_per_unit"],
                    total_amount=item_row["total_amount"],
                    sort_order=item_row["sort_order"],
                )
                for item_row in item_rows
            ],
            total_litres=_decimal(row["total_litres"]),
            total_deliveries=row["total_deliveries"],
            skipped_deliveries=row["skipped_deliveries"],
            subtotal=row["subtotal"],
            discount=row["discount"],
            tax=row["tax"],
            total_amount=row["total_amount"],
            paid_amount=row["paid_amount"],
            pending_amount=row["pending_amount"],
            status=BillStatus(row["status"]),
            due_date=row["due_date"],
            sent_at=row["sent_at"],
            reminders=[
                BillReminder(
                    id=r["id"],
                    bill_id=r["bill_id"],
                    channel=ReminderChannel(r["channel"]),
                    kind=ReminderKind(r["kind"]),
                    sent_at=r["sent_at"],
                )
                for r in reminder_rows
            ],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _build_bills_from_rows(self, rows: list[RowMapping]) -> list[Bill]:
        if not rows:
            return []
        placeholders, params = _in_clause("id", [row["id"] for row in rows])
        items_by_bill: dict[int, list[RowMapping]] = {}
        for item_row in (
            self.conn.execute(
                text(f"SELECT * FROM bill_items WHERE bill_id IN ({placeholders}) ORDER BY sort_order"),
                params,
            )
            .mappings()
            .fetchall()
        ):
            items_by_bill.setdefault(item_row["bill_id"], []).append(item_row)
        deliveries_by_bill: dict[int, list[int]] = {}
        for link in (
            self.conn.execute(
                text(f"SELECT * FROM bill_deliveries WHERE bill_id IN ({placeholders}) ORDER BY delivery_id"),
                params,
            )
            .mappings()
            .fetchall()
        ):
            deliveries_by_bill.setdefault(link["bill_id"], []).append(link["delivery_id"])
        reminders_by_bill: dict[int, list[RowMapping]] = {}
        for reminder_row in (
            self.conn.execute(
                text(f"SELECT * FROM bill_reminders WHERE bill_id IN ({placeholders}) ORDER BY sent_at, id"),
                params,
            )
            .mappings()
            .fetchall()
        ):
            reminders_by_bill.setdefault(reminder_row["bill_id"], []).append(reminder_row)
        return [
            self._build_bill(
                row,
                items_by_bill.get(row["id"], []),
                deliveries_by_bill.get(row["id"], []),
                reminders_by_bill.get(row["id"], []),
            )
            for row in rows
        ]

    def _fetch_one(self, where: str, params: dict[str, Any]) -> Bill | None:
        row = self.conn.execute(text(f"SELECT * FROM bills WHERE {where}"), params).mappings().fetchone()
        if row is None:
            return None
        return self._build_bills_from_rows([row])[0]

    def _fetch_many(self, where: str, params: dict[str, Any], order_by: str) -> list[Bill]:
        rows = (
            self.conn.execute(text(f"SELECT * FROM bills WHERE {where} ORDER BY {order_by}"), params)
            .mappings()
            .fetchall()
        )
        return self._build_bills_from_rows(list(rows))

    def get_by_id(self, bill_id: int) -> Bill | None:
        return self._fetch_one("id = :id", {"id": bill_id})

    def get_by_number(self, bill_number: str) -> Bill | None:
        return self._fetch_one("bill_number = :bill_number", {"bill_number": bill_number})

    def get_for_period(self, user_id: int, month: int, year: int) -> Bill | None:
        return self._fetch_one(
            "user_id = :user_id AND month = :month AND year = :year",
            {"user_id": user_id, "month": month, "year": year},
        )

    def count_all(self) -> int:
        row = self.conn.execute(text("SELECT COUNT(*) FROM bills")).fetchone()
        return int(row[0]) if row else 0

    def list_bills(
        self,
        user_id: int | None = None,
        month: int | None = None,
        year: int | None = None,
        status: BillStatus | None = None,
    ) -> list[Bill]:
        clauses = ["1 = 1"]
        params: dict[str, Any] = {}
        if user_id is not None:
            clauses.append("user_id = :user_id")
            params["user_id"] = user_id
        if month is not None:
            clauses.append("month = :month")
            params["month"] = month
        if year is not None:
            clauses.append("year = :year")
            params["year"] = year
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status.value
        return self._fetch_many(" AND ".join(clauses), params, "created_at DESC, id DESC")

    def _open_status_clause(self) -> tuple[str, dict[str, Any]]:
        placeholders, params = _in_clause("status", [s.value for s in OPEN_STATUSES])
        return f"status IN ({placeholders})", params

    def list_open_due_between(self, start: datetime, end: datetime) -> list[Bill]:
        status_clause, params = self._open_status_clause()
        params.update({"start": start, "end": end})
        return self._fetch_many(f"{status_clause} AND due_date >= :start AND due_date <= :end", params, "due_date, id")

    def list_open_due_before(self, moment: datetime) -> list[Bill]:
        status_clause, params = self._open_status_clause()
        params["moment"] = moment
        return self._fetch_many(f"{status_clause} AND due_date < :moment", params, "due_date, id")

    def list_unpaid_for_user(self, user_id: int) -> list[Bill]:
        return self._fetch_many("user_id = :user_id AND pending_amount > 0", {"user_id": user_id}, "year, month")

    def update_settlement(self, bill: Bill, expected_version: int) -> bool:
        result = self.conn.execute(
            text(
                "UPDATE bills SET paid_amount = :paid_amount, pending_amount = :pending_amount, "
                "status = :status, version = version + 1, updated_at = :updated_at "
                "WHERE id = :id AND version = :version"
            ),
            {
                "paid_amount": bill.paid_amount,
                "pending_amount": bill.pending_amount,
                "status": bill.status.value,
                "updated_at": _now(),
                "id": bill.id,
                "version": expected_version,
            },
        )
        self._commit()
        return result.rowcount == 1

    def mark_sent(self, bill_id: int, sent_at: datetime, expected_version: int) -> bool:
        result = self.conn.execute(
            text(
                "UPDATE bills SET status = :status, sent_at = :sent_at, version = version + 1, "
                "updated_at = :updated_at WHERE id = :id AND version = :version AND status = :expected"
            ),
            {
                "status": BillStatus.SENT.value,
                "sent_at": sent_at,
                "updated_at": _now(),
                "id": bill_id,
                "version": expected_version,
                "expected": BillStatus.GENERATED.value,
            },
        )
        self._commit()
        return result.rowcount == 1

    def add_reminder(self, reminder: BillReminder) -> BillReminder:
        sent_at = reminder.sent_at or _now()
        result = self.conn.execute(
            text(
                "INSERT INTO bill_reminders (bill_id, channel, kind, sent_at) "
                "VALUES (:bill_id, :channel, :kind, :sent_at)"
            ),
            {
                "bill_id": reminder.bill_id,
                "channel": reminder.channel.value,
                "kind": reminder.kind.value,
                "sent_at": sent_at,
            },
        )
        self._commit()
        return reminder.model_copy(update={"id": result.lastrowid, "sent_at": sent_at})


class SQLAlchemyPaymentRepository(_SQLAlchemyRepository, PaymentRepository):
    @staticmethod
    def _row_to_payment(row: RowMapping) -> Payment:
        return Payment(
            id=row["id"],
            uuid=row["uuid"],
            user_id=row["user_id"],
            bill_id=row["bill_id"],
            amount=row["amount"],
            method=PaymentMethod(row["method"]),
            status=PaymentStatus(row["status"]),
            transaction_id=row["transaction_id"],
            gateway_order_id=row["gateway_order_id"] or "",
            gateway_payment_id=row["gateway_payment_id"] or "",
            gateway_signature=row["gateway_signature"] or "",
            received_by=row["received_by"],
            notes=row["notes"] or "",
            paid_at=row["paid_at"],
            created_at=row["created_at"],
        )

    def create(self, payment: Payment) -> Payment:
        now = _now()
        payment_uuid = str(ULID())
        self._execute_unique(
            text(
                "INSERT INTO payments (uuid, user_id, bill_id, amount, method, status, transaction_id, "
                "gateway_order_id, gateway_payment_id, gateway_signature, received_by, notes, paid_at, created_at) "
                "VALUES (:uuid, :user_id, :bill_id, :amount, :method, :status, :transaction_id, "
                ":gateway_order_id, :gateway_payment_id, :gateway_signature, :received_by, :notes, "
                ":paid_at, :created_at)"
            ),
            {
                "uuid": payment_uuid,
                "user_id": payment.user_id,
                "bill_id": payment.bill_id,
                "amount": payment.amount,
                "method": payment.method.value,
                "status": payment.status.value,
                "transaction_id": payment.transaction_id,
                "gateway_order_id": payment.gateway_order_id,
                "gateway_payment_id": payment.gateway_payment_id,
                "gateway_signature": payment.gateway_signature,
                "received_by": payment.received_by,
                "notes": payment.notes,
                "paid_at": payment.paid_at or now,
                "created_at": now,
            },
        )
        self._commit()
        row = (
            self.conn.execute(text("SELECT * FROM payments WHERE uuid = :uuid"), {"uuid": payment_uuid})
            .mappings()
            .fetchone()
        )
        if row is None:
            raise RuntimeError(f"Failed to retrieve payment after create (uuid={payment_uuid})")
        return self._row_to_payment(row)

    def get_by_id(self, payment_id: int) -> Payment | None:
        row = self.conn.execute(text("SELECT * FROM payments WHERE id = :id"), {"id": payment_id}).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    def get_by_transaction_id(self, transaction_id: str) -> Payment | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM payments WHERE transaction_id = :transaction_id"),
                {"transaction_id": transaction_id},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_payment(row)

    def list_by_bill(self, bill_id: int) -> list[Payment]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM payments WHERE bill_id = :bill_id ORDER BY paid_at, id"),
                {"bill_id": bill_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_payment(row) for row in rows]

    def list_payments(self, user_id: int | None = None, status: PaymentStatus | None = None) -> list[Payment]:
        clauses = ["1 = 1"]
        params: dict[str, Any] = {}
        if user_id is not None:
            clauses.append("user_id = :user_id")
            params["user_id"] = user_id
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status.value
        rows = (
            self.conn.execute(
                text(f"SELECT * FROM payments WHERE {' AND '.join(clauses)} ORDER BY paid_at DESC, id DESC"),
                params,
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_payment(row) for row in rows]

    def update_status(self, payment_id: int, status: PaymentStatus, expected: PaymentStatus) -> bool:
        result = self.conn.execute(
            text("UPDATE payments SET status = :status WHERE id = :id AND status = :expected"),
            {"status": status.value, "id": payment_id, "expected": expected.value},
        )
        self._commit()
        return result.rowcount == 1


class SQLAlchemyNotificationRepository(_SQLAlchemyRepository, NotificationRepository):
    @staticmethod
    def _row_to_notification(row: RowMapping) -> Notification:
        channels = row["channels"]
        if isinstance(channels, str):
            channels = json.loads(channels)
        sent_via = row["sent_via"]
        if isinstance(sent_via, str):
            sent_via = json.loads(sent_via)
        return Notification(
            id=row["id"],
            uuid=row["uuid"],
            user_id=row["user_id"],
            title=row["title"],
            message=row["message"],
            category=NotificationCategory(row["category"]),
            priority=NotificationPriority(row["priority"]),
            channels=channels or [],
            sent_via=[ChannelResult(**r) for r in sent_via or []],
            is_read=bool(row["is_read"]),
            created_at=row["created_at"],
        )

    def create(self, notification: Notification) -> Notification:
        notification_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO notifications (uuid, user_id, title, message, category, priority, channels, "
                "sent_via, is_read, created_at) "
                "VALUES (:uuid, :user_id, :title, :message, :category, :priority, :channels, "
                ":sent_via, 0, :created_at)"
            ),
            {
                "uuid": notification_uuid,
                "user_id": notification.user_id,
                "title": notification.title,
                "message": notification.message,
                "category": notification.category.value,
                "priority": notification.priority.value,
                "channels": json.dumps(notification.channels),
                "sent_via": json.dumps([r.model_dump(mode="json") for r in notification.sent_via]),
                "created_at": _now(),
            },
        )
        self._commit()
        row = (
            self.conn.execute(text("SELECT * FROM notifications WHERE uuid = :uuid"), {"uuid": notification_uuid})
            .mappings()
            .fetchone()
        )
        if row is None:
            raise RuntimeError(f"Failed to retrieve notification after create (uuid={notification_uuid})")
        return self._row_to_notification(row)

    def record_results(self, notification_id: int, results: list[ChannelResult]) -> None:
        self.conn.execute(
            text("UPDATE notifications SET sent_via = :sent_via WHERE id = :id"),
            {"sent_via": json.dumps([r.model_dump(mode="json") for r in results]), "id": notification_id},
        )
        self._commit()

    def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM notifications WHERE user_id = :user_id ORDER BY created_at DESC, id DESC LIMIT :limit"),
                {"user_id": user_id, "limit": limit},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_notification(row) for row in rows]


class SQLAlchemyJobRunRepository(_SQLAlchemyRepository, JobRunRepository):
    @staticmethod
    def _row_to_job_run(row: RowMapping) -> JobRun:
        errors = row["errors"]
        if isinstance(errors, str):
            errors = json.loads(errors)
        return JobRun(
            id=row["id"],
            job_name=row["job_name"],
            run_key=row["run_key"],
            status=JobRunStatus(row["status"]),
            processed=row["processed"],
            failed=row["failed"],
            errors=errors or [],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
        )

    def _get(self, job_name: str, run_key: str) -> JobRun | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM job_runs WHERE job_name = :job_name AND run_key = :run_key"),
                {"job_name": job_name, "run_key": run_key},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_job_run(row)

    def start(self, job_name: str, run_key: str, started_at: datetime) -> JobRun | None:
        try:
            self._execute_unique(
                text(
                    "INSERT INTO job_runs (job_name, run_key, status, processed, failed, errors, started_at) "
                    "VALUES (:job_name, :run_key, :status, 0, 0, '[]', :started_at)"
                ),
                {
                    "job_name": job_name,
                    "run_key": run_key,
                    "status": JobRunStatus.RUNNING.value,
                    "started_at": started_at,
                },
            )
        except DuplicateRecordError:
            result = self.conn.execute(
                text(
                    "UPDATE job_runs SET status = :status, processed = 0, failed = 0, errors = '[]', "
                    "started_at = :started_at, finished_at = NULL "
                    "WHERE job_name = :job_name AND run_key = :run_key AND status = :failed_status"
                ),
                {
                    "status": JobRunStatus.RUNNING.value,
                    "started_at": started_at,
                    "job_name": job_name,
                    "run_key": run_key,
                    "failed_status": JobRunStatus.FAILED.value,
                },
            )
            self._commit()
            if result.rowcount != 1:
                return None
            return self._get(job_name, run_key)
        self._commit()
        return self._get(job_name, run_key)

    def finish(self, job_run: JobRun) -> None:
        self.conn.execute(
            text(
                "UPDATE job_runs SET status = :status, processed = :processed, failed = :failed, "
                "errors = :errors, finished_at = :finished_at WHERE id = :id"
            ),
            {
                "status": job_run.status.value,
                "processed": job_run.processed,
                "failed": job_run.failed,
                "errors": json.dumps(job_run.errors),
                "finished_at": job_run.finished_at or _now(),
                "id": job_run.id,
            },
        )
        self._commit()

    def last_run(self, job_name: str) -> JobRun | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM job_runs WHERE job_name = :job_name ORDER BY started_at DESC, id DESC LIMIT 1"),
                {"job_name": job_name},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_job_run(row)


class SQLAlchemyAuditLogRepository(_SQLAlchemyRepository, AuditLogRepository):
    @staticmethod
    def _row_to_audit_log(row: RowMapping) -> AuditLog:
        previous_state = row["previous_state"]
        if isinstance(previous_state, str):
            previous_state = json.loads(previous_state)
        new_state = row["new_state"]
        if isinstance(new_state, str):
            new_state = json.loads(new_state)
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return AuditLog(
            id=row["id"],
            uuid=row["uuid"],
            event_type=row["event_type"],
            actor_id=row["actor_id"],
            source=row["source"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            entity_uuid=row["entity_uuid"],
            previous_state=previous_state,
            new_state=new_state,
            metadata=metadata,
            created_at=row["created_at"],
        )

    def create(self, audit_log: AuditLog) -> AuditLog:
        audit_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO audit_logs (uuid, event_type, actor_id, source, entity_type, entity_id, "
                "entity_uuid, previous_state, new_state, metadata, created_at) "
                "VALUES (:uuid, :event_type, :actor_id, :source, :entity_type, :entity_id, "
                ":entity_uuid, :previous_state, :new_state, :metadata, :created_at)"
            ),
            {
                "uuid": audit_uuid,
                "event_type": audit_log.event_type,
                "actor_id": audit_log.actor_id,
                "source": audit_log.source,
                "entity_type": audit_log.entity_type,
                "entity_id": audit_log.entity_id,
                "entity_uuid": audit_log.entity_uuid,
                "previous_state": json.dumps(audit_log.previous_state)
                if audit_log.previous_state is not None
                else None,
                "new_state": json.dumps(audit_log.new_state) if audit_log.new_state is not None else None,
                "metadata": json.dumps(audit_log.metadata),
                "created_at": _now(),
            },
        )
        self._commit()

        row = (
            self.conn.execute(text("SELECT * FROM audit_logs WHERE uuid = :uuid"), {"uuid": audit_uuid})
            .mappings()
            .fetchone()
        )
        if row is None:
            raise RuntimeError(f"Failed to retrieve audit log after create (uuid={audit_uuid})")
        return self._row_to_audit_log(row)

    def list_by_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        rows = (
            self.conn.execute(
                text(
                    "SELECT * FROM audit_logs "
                    "WHERE entity_type = :entity_type AND entity_id = :entity_id "
                    "ORDER BY created_at DESC, id DESC"
                ),
                {"entity_type": entity_type, "entity_id": entity_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_audit_log(row) for row in rows]

    def list_recent(self, limit: int = 50) -> list[AuditLog]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM audit_logs ORDER BY created_at DESC, id DESC LIMIT :limit"),
                {"limit": limit},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_audit_log(row) for row in rows]
