from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime

from dairyledger.models.audit_log import AuditLog
from dairyledger.models.bill import Bill, BillReminder, BillStatus
from dairyledger.models.delivery import Delivery, DeliveryStatus
from dairyledger.models.job_run import JobRun
from dairyledger.models.notification import ChannelResult, Notification
from dairyledger.models.payment import Payment, PaymentStatus
from dairyledger.models.product import Product
from dairyledger.models.user import User


class DuplicateRecordError(Exception):
    """A write hit a unique constraint. The transaction has been rolled back."""


class TransactionManager(ABC):
    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Group repository writes into one commit. Nested calls join the outer one."""
        ...


class UserRepository(ABC):
    @abstractmethod
    def create(self, user: User) -> User: ...

    @abstractmethod
    def get_by_id(self, user_id: int) -> User | None: ...

    @abstractmethod
    def list_active_customers(self) -> list[User]: ...

    @abstractmethod
    def list_subscribed_customers(self) -> list[User]: ...

    @abstractmethod
    def list_admins(self) -> list[User]: ...

    @abstractmethod
    def adjust_pending_amount(self, user_id: int, delta: int) -> None:
        """Add ``delta`` paise to the cached balance in one statement, clamping at zero."""
        ...

    @abstractmethod
    def set_pending_amount(self, user_id: int, amount: int) -> None: ...


class ProductRepository(ABC):
    @abstractmethod
    def create(self, product: Product) -> Product: ...

    @abstractmethod
    def get_by_id(self, product_id: int) -> Product | None: ...

    @abstractmethod
    def get_many(self, product_ids: list[int]) -> dict[int, Product]: ...

    @abstractmethod
    def list_all(self) -> list[Product]: ...


class DeliveryRepository(ABC):
    @abstractmethod
    def create(self, delivery: Delivery) -> Delivery: ...

    @abstractmethod
    def get_by_id(self, delivery_id: int) -> Delivery | None: ...

    @abstractmethod
    def list_for_user_between(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        statuses: list[DeliveryStatus] | None = None,
    ) -> list[Delivery]: ...

    @abstractmethod
    def count_for_user_between(self, user_id: int, start: datetime, end: datetime, status: DeliveryStatus) -> int: ...

    @abstractmethod
    def exists_for_product(self, user_id: int, delivery_date: date, product_id: int) -> bool: ...

    @abstractmethod
    def update_status(self, delivery: Delivery, expected_status: DeliveryStatus) -> bool:
        """Persist a status transition if the stored status is still ``expected_status``."""
        ...

    @abstractmethod
    def stats_for_day(self, day: date) -> dict[str, dict[str, int]]: ...


class BillRepository(ABC):
    @abstractmethod
    def create(self, bill: Bill) -> Bill:
        """Insert a bill. Raises DuplicateRecordError on (user, month, year) or bill number clash."""
        ...

    @abstractmethod
    def get_by_id(self, bill_id: int) -> Bill | None: ...

    @abstractmethod
    def get_by_number(self, bill_number: str) -> Bill | None: ...

    @abstractmethod
    def get_for_period(self, user_id: int, month: int, year: int) -> Bill | None: ...

    @abstractmethod
    def count_all(self) -> int: ...

    @abstractmethod
    def list_bills(
        self,
        user_id: int | None = None,
        month: int | None = None,
        year: int | None = None,
        status: BillStatus | None = None,
    ) -> list[Bill]: ...

    @abstractmethod
    def list_open_due_between(self, start: datetime, end: datetime) -> list[Bill]: ...

    @abstractmethod
    def list_open_due_before(self, moment: datetime) -> list[Bill]: ...

    @abstractmethod
    def list_unpaid_for_user(self, user_id: int) -> list[Bill]: ...

    @abstractmethod
    def update_settlement(self, bill: Bill, expected_version: int) -> bool:
        """Write paid/pending/status if the stored version still matches. Returns False on a stale read."""
        ...

    @abstractmethod
    def mark_sent(self, bill_id: int, sent_at: datetime, expected_version: int) -> bool: ...

    @abstractmethod
    def add_reminder(self, reminder: BillReminder) -> BillReminder: ...


class PaymentRepository(ABC):
    @abstractmethod
    def create(self, payment: Payment) -> Payment:
        """Insert a payment. Raises DuplicateRecordError on a reused transaction id."""
        ...

    @abstractmethod
    def get_by_id(self, payment_id: int) -> Payment | None: ...

    @abstractmethod
    def get_by_transaction_id(self, transaction_id: str) -> Payment | None: ...

    @abstractmethod
    def list_by_bill(self, bill_id: int) -> list[Payment]: ...

    @abstractmethod
    def list_payments(self, user_id: int | None = None, status: PaymentStatus | None = None) -> list[Payment]: ...

    @abstractmethod
    def update_status(self, payment_id: int, status: PaymentStatus, expected: PaymentStatus) -> bool: ...


class NotificationRepository(ABC):
    @abstractmethod
    def create(self, notification: Notification) -> Notification: ...

    @abstractmethod
    def record_results(self, notification_id: int, results: list[ChannelResult]) -> None: ...

    @abstractmethod
    def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]: ...


class JobRunRepository(ABC):
    @abstractmethod
    def start(self, job_name: str, run_key: str, started_at: datetime) -> JobRun | None:
        """Claim (job_name, run_key). Returns None when another run already owns the key.

        A key whose previous run failed outright can be claimed again.
        """
        ...

    @abstractmethod
    def finish(self, job_run: JobRun) -> None: ...

    @abstractmethod
    def last_run(self, job_name: str) -> JobRun | None: ...


class AuditLogRepository(ABC):
    @abstractmethod
    def create(self, audit_log: AuditLog) -> AuditLog: ...

    @abstractmethod
    def list_by_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]: ...

    @abstractmethod
    def list_recent(self, limit: int = 50) -> list[AuditLog]: ...
