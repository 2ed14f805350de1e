from dairyledger.repositories.base import (
    AuditLogRepository,
    BillRepository,
    DeliveryRepository,
    JobRunRepository,
    NotificationRepository,
    PaymentRepository,
    ProductRepository,
    TransactionManager,
    UserRepository,
)


def get_transaction_manager() -> TransactionManager:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyTransactionManager

    return SQLAlchemyTransactionManager(get_connection())


def get_user_repository() -> UserRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyUserRepository

    return SQLAlchemyUserRepository(get_connection())


def get_product_repository() -> ProductRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyProductRepository

    return SQLAlchemyProductRepository(get_connection())


def get_delivery_repository() -> DeliveryRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyDeliveryRepository

    return SQLAlchemyDeliveryRepository(get_connection())


def get_bill_repository() -> BillRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyBillRepository

    return SQLAlchemyBillRepository(get_connection())


def get_payment_repository() -> PaymentRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyPaymentRepository

    return SQLAlchemyPaymentRepository(get_connection())


def get_notification_repository() -> NotificationRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyNotificationRepository

    return SQLAlchemyNotificationRepository(get_connection())


def get_job_run_repository() -> JobRunRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyJobRunRepository

    return SQLAlchemyJobRunRepository(get_connection())


def get_audit_log_repository() -> AuditLogRepository:
    from dairyledger.db import get_connection
    from dairyledger.repositories.sqlalchemy import SQLAlchemyAuditLogRepository

    return SQLAlchemyAuditLogRepository(get_connection())
