from __future__ import annotations

import logging

from fastapi import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from dairyledger.db import get_engine
from dairyledger.errors import ValidationError
from dairyledger.notifications.factory import get_channels
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
from dairyledger.services.aggregation_service import DeliveryAggregator
from dairyledger.services.audit_service import AuditService
from dairyledger.services.bill_service import BillService
from dairyledger.services.delivery_service import DeliveryService
from dairyledger.services.gateway import get_gateway
from dairyledger.services.jobs import BillingJobs
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.services.payment_service import PaymentService
from dairyledger.services.scheduler import Scheduler, default_jobs

logger = logging.getLogger(__name__)

ACTOR_HEADER = "x-actor-id"
SOURCE = "web"


class DBConnectionMiddleware:
    """Pure ASGI middleware. Opens at most one DB connection per request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request.state.db_conn = None
        try:
            await self.app(scope, receive, send)
        finally:
            conn = getattr(request.state, "db_conn", None)
            if conn is not None:
                conn.close()
                logger.debug("DB connection closed for %s %s", request.method, request.url.path)


def _get_conn(request: Request):
    """Lazy per-request connection, created on first use and closed by the middleware."""
    if request.state.db_conn is None:
        logger.debug("Creating DB connection for %s %s", request.method, request.url.path)
        request.state.db_conn = get_engine().connect()
    return request.state.db_conn


def get_actor_id(request: Request) -> int | None:
    """Operator id from the X-Actor-Id header. Authentication happens upstream."""
    raw = request.headers.get(ACTOR_HEADER, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("X-Actor-Id must be an integer") from exc


def get_audit_service(request: Request) -> AuditService:
    return AuditService(SQLAlchemyAuditLogRepository(_get_conn(request)))


def get_dispatcher(request: Request) -> NotificationDispatcher:
    conn = _get_conn(request)
    return NotificationDispatcher(
        SQLAlchemyNotificationRepository(conn),
        SQLAlchemyUserRepository(conn),
        get_channels(),
    )


def get_bill_service(request: Request) -> BillService:
    conn = _get_conn(request)
    return BillService(
        SQLAlchemyBillRepository(conn),
        SQLAlchemyUserRepository(conn),
        SQLAlchemyPaymentRepository(conn),
        DeliveryAggregator(SQLAlchemyDeliveryRepository(conn), SQLAlchemyProductRepository(conn)),
        SQLAlchemyTransactionManager(conn),
        dispatcher=get_dispatcher(request),
        audit=get_audit_service(request),
    )


def get_payment_service(request: Request) -> PaymentService:
    conn = _get_conn(request)
    return PaymentService(
        SQLAlchemyPaymentRepository(conn),
        SQLAlchemyBillRepository(conn),
        SQLAlchemyUserRepository(conn),
        SQLAlchemyTransactionManager(conn),
        dispatcher=get_dispatcher(request),
        audit=get_audit_service(request),
        gateway=get_gateway(),
    )


def get_delivery_service(request: Request) -> DeliveryService:
    conn = _get_conn(request)
    return DeliveryService(
        SQLAlchemyDeliveryRepository(conn),
        SQLAlchemyProductRepository(conn),
        SQLAlchemyUserRepository(conn),
        dispatcher=get_dispatcher(request),
        audit=get_audit_service(request),
    )


def get_scheduler(request: Request) -> Scheduler:
    conn = _get_conn(request)
    jobs = BillingJobs(
        SQLAlchemyUserRepository(conn),
        SQLAlchemyProductRepository(conn),
        SQLAlchemyDeliveryRepository(conn),
        SQLAlchemyBillRepository(conn),
        get_dispatcher(request),
        audit=get_audit_service(request),
    )
    return Scheduler(SQLAlchemyJobRunRepository(conn), default_jobs(jobs))
