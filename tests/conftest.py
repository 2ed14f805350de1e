"""Root conftest: in-memory SQLite engine and fixtures for the full schema."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import Connection, create_engine, event, text
from sqlalchemy.engine import Engine

from dairyledger.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from dairyledger.models.product import Product, ProductUnit
from dairyledger.models.user import Subscription, SubscriptionItem, User, UserRole

# Matches Alembic head: 3f1c2a9d8e10 (initial schema)
SCHEMA_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    name TEXT NOT NULL,
    email TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    role TEXT NOT NULL DEFAULT 'user',
    is_active TINYINT NOT NULL DEFAULT 1,
    pending_amount INTEGER NOT NULL DEFAULT 0,
    notify_sms TINYINT NOT NULL DEFAULT 1,
    notify_email TINYINT NOT NULL DEFAULT 1,
    notify_push TINYINT NOT NULL DEFAULT 1,
    subscription_active TINYINT NOT NULL DEFAULT 1,
    subscription_plan TEXT NOT NULL DEFAULT 'daily',
    subscription_start DATE,
    assigned_labour_id INTEGER REFERENCES users(id),
    assigned_route_id INTEGER,
    created_at DATETIME NOT NULL
);

CREATE TABLE products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    name TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'milk',
    unit TEXT NOT NULL DEFAULT 'litre',
    price_per_unit INTEGER NOT NULL,
    is_available TINYINT NOT NULL DEFAULT 1,
    created_at DATETIME NOT NULL
);

CREATE TABLE subscription_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL REFERENCES products(id),
    quantity TEXT NOT NULL,
    delivery_time TEXT NOT NULL DEFAULT 'morning',
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE deliveries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    labour_id INTEGER REFERENCES users(id),
    route_id INTEGER,
    delivery_date DATE NOT NULL,
    delivery_time TEXT NOT NULL DEFAULT 'morning',
    total_amount INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'scheduled',
    skip_reason TEXT,
    skipped_by TEXT,
    delivered_at DATETIME,
    payment_status TEXT NOT NULL DEFAULT 'pending',
    payment_method TEXT NOT NULL DEFAULT 'cash',
    notes TEXT,
    created_at DATETIME NOT NULL,
    updated_at DATETIME NOT NULL
);

CREATE TABLE delivery_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    delivery_id INTEGER NOT NULL REFERENCES deliveries(id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL REFERENCES products(id),
    quantity TEXT NOT NULL,
    price_per_unit INTEGER NOT NULL,
    total_price INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE bills (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    bill_number VARCHAR(32) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    month INTEGER NOT NULL,
    year INTEGER NOT NULL,
    period_start DATETIME NOT NULL,
    period_end DATETIME NOT NULL,
    total_litres TEXT NOT NULL DEFAULT '0',
    total_deliveries INTEGER NOT NULL DEFAULT 0,
    skipped_deliveries INTEGER NOT NULL DEFAULT 0,
    subtotal INTEGER NOT NULL DEFAULT 0,
    discount INTEGER NOT NULL DEFAULT 0,
    tax INTEGER NOT NULL DEFAULT 0,
    total_amount INTEGER NOT NULL DEFAULT 0,
    paid_amount INTEGER NOT NULL DEFAULT 0,
    pending_amount INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft',
    due_date DATETIME NOT NULL,
    sent_at DATETIME,
    version INTEGER NOT NULL DEFAULT 0,
    created_at DATETIME NOT NULL,
    updated_at DATETIME NOT NULL,
    UNIQUE(user_id, month, year)
);

CREATE TABLE bill_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id INTEGER NOT NULL REFERENCES bills(id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL REFERENCES products(id),
    product_name TEXT NOT NULL,
    unit TEXT NOT NULL,
    total_quantity TEXT NOT NULL,
    price_per_unit INTEGER NOT NULL,
    total_amount INTEGER NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE bill_deliveries (
    bill_id INTEGER NOT NULL REFERENCES bills(id) ON DELETE CASCADE,
    delivery_id INTEGER NOT NULL REFERENCES deliveries(id),
    PRIMARY KEY (bill_id, delivery_id)
);

CREATE TABLE bill_reminders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id INTEGER NOT NULL REFERENCES bills(id) ON DELETE CASCADE,
    channel TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'reminder',
    sent_at DATETIME NOT NULL
);

CREATE TABLE payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    bill_id INTEGER REFERENCES bills(id),
    amount INTEGER NOT NULL,
    method TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'completed',
    transaction_id VARCHAR(64) NOT NULL UNIQUE,
    gateway_order_id TEXT,
    gateway_payment_id TEXT,
    gateway_signature TEXT,
    received_by INTEGER REFERENCES users(id),
    notes TEXT,
    paid_at DATETIME NOT NULL,
    created_at DATETIME NOT NULL
);

CREATE TABLE notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'system',
    priority TEXT NOT NULL DEFAULT 'medium',
    channels TEXT,
    sent_via TEXT,
    is_read TINYINT NOT NULL DEFAULT 0,
    created_at DATETIME NOT NULL
);

CREATE TABLE job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name VARCHAR(64) NOT NULL,
    run_key VARCHAR(64) NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    processed INTEGER NOT NULL DEFAULT 0,
    failed INTEGER NOT NULL DEFAULT 0,
    errors TEXT,
    started_at DATETIME NOT NULL,
    finished_at DATETIME,
    UNIQUE(job_name, run_key)
);

CREATE TABLE audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    event_type VARCHAR(64) NOT NULL,
    actor_id INTEGER,
    source VARCHAR(16) NOT NULL DEFAULT '',
    entity_type VARCHAR(32) NOT NULL DEFAULT '',
    entity_id INTEGER,
    entity_uuid VARCHAR(26) NOT NULL DEFAULT '',
    previous_state TEXT,
    new_state TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at DATETIME NOT NULL
)
"""


def apply_schema(conn: Connection) -> None:
    for statement in SCHEMA_DDL.strip().split(";"):
        stmt = statement.strip()
        if stmt:
            conn.execute(text(stmt))
    conn.commit()


@pytest.fixture()
def db_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:")

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    return engine


@pytest.fixture()
def db_connection(db_engine: Engine) -> Connection:
    conn = db_engine.connect()
    apply_schema(conn)
    yield conn
    conn.close()


def _sample_product(**overrides) -> Product:
    defaults = dict(name="Cow Milk", unit=ProductUnit.LITRE, price_per_unit=6000)
    defaults.update(overrides)
    return Product(**defaults)


def _sample_customer(product_ids: list[int] | None = None, **overrides) -> User:
    defaults = dict(
        name="Ravi Kumar",
        email="ravi@example.com",
        phone="+919800000001",
        role=UserRole.CUSTOMER,
        subscription=Subscription(
            items=[SubscriptionItem(product_id=pid, quantity=Decimal("1")) for pid in product_ids or []]
        ),
    )
    defaults.update(overrides)
    return User(**defaults)


def _sample_delivery(user_id: int, product_id: int, **overrides) -> Delivery:
    quantity = overrides.pop("quantity", Decimal("1"))
    price = overrides.pop("price_per_unit", 6000)
    total = int(quantity * price)
    defaults = dict(
        user_id=user_id,
        delivery_date=date(2025, 3, 10),
        items=[DeliveryItem(product_id=product_id, quantity=quantity, price_per_unit=price, total_price=total)],
        total_amount=total,
        status=DeliveryStatus.DELIVERED,
        delivered_at=datetime(2025, 3, 10, 7, 0),
    )
    defaults.update(overrides)
    return Delivery(**defaults)


@pytest.fixture()
def sample_product():
    return _sample_product


@pytest.fixture()
def sample_customer():
    return _sample_customer


@pytest.fixture()
def sample_delivery():
    return _sample_delivery


@pytest.fixture()
def repos(db_connection: Connection):
    """All SQLAlchemy repositories bound to the test connection."""
    from types import SimpleNamespace

    from dairyledger.repositories.sqlalchemy import (
        SQLAlchemyAuditLogRepository,
        SQLAlchemyBillRepository,
        SQLAlchemyDeliveryRepository,
        SQLAlchemyJobRunRepository,
        SQLAlchemyNotificationRepository,
        SQLAlchemyPaymentRepository,
        SQLAlchemyProductRepository,
        SQLAlchemyTransactionManager,
        SQLAlchemyUserRepository,
    )

    return SimpleNamespace(
        conn=db_connection,
        tx=SQLAlchemyTransactionManager(db_connection),
        users=SQLAlchemyUserRepository(db_connection),
        products=SQLAlchemyProductRepository(db_connection),
        deliveries=SQLAlchemyDeliveryRepository(db_connection),
        bills=SQLAlchemyBillRepository(db_connection),
        payments=SQLAlchemyPaymentRepository(db_connection),
        notifications=SQLAlchemyNotificationRepository(db_connection),
        job_runs=SQLAlchemyJobRunRepository(db_connection),
        audit_logs=SQLAlchemyAuditLogRepository(db_connection),
    )
