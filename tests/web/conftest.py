from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


@pytest.fixture()
def db_engine(monkeypatch) -> Engine:
    """One shared in-memory database for the app and the test's own repositories."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    monkeypatch.setattr("web.deps.get_engine", lambda: engine)
    monkeypatch.setattr("web.app.initialize_db", lambda: None)
    yield engine
    engine.dispose()


@pytest.fixture()
def client(db_connection):
    from web.app import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def lenient_client(db_connection):
    """Client that turns unhandled exceptions into 500 responses instead of re-raising them."""
    from web.app import app

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture()
def milk(repos, sample_product):
    return repos.products.create(sample_product())


@pytest.fixture()
def customer(repos, sample_customer, milk):
    return repos.users.create(sample_customer(product_ids=[milk.id]))


@pytest.fixture()
def march_bill(repos, customer, milk, sample_delivery, client):
    """A generated March 2025 bill of ₹120.00, as returned by the API."""
    repos.deliveries.create(
        sample_delivery(customer.id, milk.id, quantity=Decimal("2"), delivery_date=date(2025, 3, 3))
    )
    response = client.post("/api/billing/generate", json={"customerId": customer.id, "month": 3, "year": 2025})
    assert response.status_code == 201
    return response.json()["bill"]
