import questionary
from rich.console import Console
from rich.table import Table

from dairyledger.cli.bill_menu import generate_all_bills_menu, generate_bill_menu, list_bills_menu
from dairyledger.notifications.factory import get_channels
from dairyledger.repositories.factory import (
    get_audit_log_repository,
    get_bill_repository,
    get_delivery_repository,
    get_job_run_repository,
    get_notification_repository,
    get_payment_repository,
    get_product_repository,
    get_transaction_manager,
    get_user_repository,
)
from dairyledger.services.aggregation_service import DeliveryAggregator
from dairyledger.services.audit_service import AuditService
from dairyledger.services.bill_service import BillService
from dairyledger.services.jobs import BillingJobs
from dairyledger.services.notification_service import NotificationDispatcher
from dairyledger.services.payment_service import PaymentService
from dairyledger.services.scheduler import Scheduler, default_jobs
from dairyledger.settings import settings

console = Console()


def build_services() -> tuple[BillService, PaymentService, Scheduler]:
    user_repo = get_user_repository()
    bill_repo = get_bill_repository()
    payment_repo = get_payment_repository()
    delivery_repo = get_delivery_repository()
    product_repo = get_product_repository()
    tx = get_transaction_manager()
    audit = AuditService(get_audit_log_repository())
    dispatcher = NotificationDispatcher(get_notification_repository(), user_repo, get_channels())

    bill_service = BillService(
        bill_repo,
        user_repo,
        payment_repo,
        DeliveryAggregator(delivery_repo, product_repo),
        tx,
        dispatcher=dispatcher,
        audit=audit,
    )
    payment_service = PaymentService(payment_repo, bill_repo, user_repo, tx, dispatcher=dispatcher, audit=audit)
    jobs = BillingJobs(user_repo, product_repo, delivery_repo, bill_repo, dispatcher, audit=audit)
    scheduler = Scheduler(get_job_run_repository(), default_jobs(jobs))
    return bill_service, payment_service, scheduler


def run_job_menu(scheduler: Scheduler) -> None:
    choices = [*scheduler.jobs, "Back"]
    name = questionary.select("Which job?", choices=choices).ask()
    if name is None or name == "Back":
        return
    force = questionary.confirm("Run again even if it already ran today?", default=False).ask()
    job_run = scheduler.run_job(name, force=bool(force))
    if job_run is None:
        console.print(f"[yellow]{name} already ran today.[/yellow]")
        return

    table = Table(title=name)
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_row(job_run.status.value, str(job_run.processed), str(job_run.failed))
    console.print(table)
    for error in job_run.errors:
        console.print(f"  [red]{error.get('itemId')}: {error.get('error')}[/red]")


def main_menu() -> None:
    bill_service, payment_service, scheduler = build_services()

    console.print()
    console.print(f"[bold]{settings.business_name}: Billing[/bold]", style="cyan")
    console.print()

    while True:
        choice = questionary.select(
            "Main Menu",
            choices=[
                "List Bills",
                "Generate Bill",
                "Generate Bills for All Customers",
                "Run Scheduler Job",
                "Exit",
            ],
        ).ask()

        if choice is None or choice == "Exit":
            console.print("[bold]Goodbye![/bold]")
            break
        elif choice == "List Bills":
            list_bills_menu(bill_service, payment_service)
        elif choice == "Generate Bill":
            generate_bill_menu(bill_service)
        elif choice == "Generate Bills for All Customers":
            generate_all_bills_menu(bill_service)
        elif choice == "Run Scheduler Job":
            run_job_menu(scheduler)
