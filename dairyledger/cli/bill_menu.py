from __future__ import annotations

import questionary
from rich.console import Console
from rich.table import Table

from dairyledger.constants import format_period, local_now
from dairyledger.errors import LedgerError
from dairyledger.models import format_inr, parse_inr
from dairyledger.models.bill import Bill
from dairyledger.services.bill_service import BillService
from dairyledger.services.payment_service import PaymentService

console = Console()

SOURCE = "cli"

STATUS_STYLES = {
    "paid": "green",
    "partial": "yellow",
    "overdue": "red",
}


def _ask_int(prompt: str, default: str = "") -> int | None:
    while True:
        raw = questionary.text(prompt, default=default).ask()
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            console.print("[red]Please enter a whole number.[/red]")


def _show_bill_detail(bill: Bill) -> None:
    """Display a bill's line items and balances."""
    detail_table = Table(title=f"{bill.bill_number} ({format_period(bill.month, bill.year)})")
    detail_table.add_column("Product")
    detail_table.add_column("Quantity", justify="right")
    detail_table.add_column("Rate", justify="right")
    detail_table.add_column("Amount", justify="right")

    for item in bill.line_items:
        detail_table.add_row(
            item.product_name,
            f"{item.total_quantity} {item.unit.value}",
            format_inr(item.price_per_unit),
            format_inr(item.total_amount),
        )

    console.print(detail_table)
    console.print(f"  Deliveries: {bill.total_deliveries} delivered, {bill.skipped_deliveries} skipped")
    console.print(f"  [bold]Total: {format_inr(bill.total_amount)}[/bold]")
    console.print(f"  Paid: {format_inr(bill.paid_amount)}  Pending: {format_inr(bill.pending_amount)}")
    console.print(f"  Due: {bill.due_date:%d/%m/%Y}  Status: {bill.status.value}")


def generate_bill_menu(bill_service: BillService) -> None:
    console.print()
    console.print("[bold]Generate Bill[/bold]", style="cyan")
    now = local_now()

    customer_id = _ask_int("Customer id:")
    if customer_id is None:
        return
    month = _ask_int("Month (1-12):", default=str(now.month))
    year = _ask_int("Year:", default=str(now.year))
    if month is None or year is None:
        return

    try:
        bill = bill_service.generate_bill(customer_id, month, year, source=SOURCE)
    except LedgerError as exc:
        console.print(f"[red]{exc.reason}: {exc.message}[/red]")
        return
    console.print(f"[green]Bill {bill.bill_number} generated.[/green]")
    _show_bill_detail(bill)


def generate_all_bills_menu(bill_service: BillService) -> None:
    console.print()
    console.print("[bold]Generate Bills for All Customers[/bold]", style="cyan")
    now = local_now()
    month = _ask_int("Month (1-12):", default=str(now.month))
    year = _ask_int("Year:", default=str(now.year))
    if month is None or year is None:
        return
    if not questionary.confirm(f"Generate bills for {format_period(month, year)}?", default=False).ask():
        return

    try:
        result = bill_service.generate_all_bills(month, year, source=SOURCE)
    except LedgerError as exc:
        console.print(f"[red]{exc.reason}: {exc.message}[/red]")
        return
    console.print(f"[green]Generated: {result['generated']}[/green]  Skipped: {result['skipped']}")
    for error in result["errors"]:
        console.print(f"  [red]Customer {error['itemId']}: {error['error']}[/red]")


def list_bills_menu(bill_service: BillService, payment_service: PaymentService) -> None:
    bills = bill_service.list_bills()
    if not bills:
        console.print("[yellow]No bills yet.[/yellow]")
        return

    table = Table(title="Bills")
    table.add_column("#", justify="right")
    table.add_column("Number")
    table.add_column("Customer", justify="right")
    table.add_column("Period")
    table.add_column("Total", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Status")

    for i, bill in enumerate(bills, 1):
        style = STATUS_STYLES.get(bill.status.value, "")
        table.add_row(
            str(i),
            bill.bill_number,
            str(bill.user_id),
            format_period(bill.month, bill.year),
            format_inr(bill.total_amount),
            format_inr(bill.pending_amount),
            f"[{style}]{bill.status.value}[/{style}]" if style else bill.status.value,
        )
    console.print(table)

    choices = [f"{i}. {b.bill_number}" for i, b in enumerate(bills, 1)]
    choices.append("Back")
    choice = questionary.select("Select a bill:", choices=choices).ask()
    if choice is None or choice == "Back":
        return
    bill = bills[int(choice.split(".")[0]) - 1]
    bill_detail_menu(bill, bill_service, payment_service)


def bill_detail_menu(bill: Bill, bill_service: BillService, payment_service: PaymentService) -> None:
    while True:
        _show_bill_detail(bill)
        payments = bill_service.list_payments(bill.id)
        for payment in payments:
            console.print(
                f"  [dim]{payment.paid_at:%d/%m/%Y} {payment.method.value} "
                f"{format_inr(payment.amount)} ({payment.transaction_id})[/dim]"
            )

        choice = questionary.select(
            "Bill actions",
            choices=["Record Cash Payment", "Mark as Sent", "Back"],
        ).ask()
        if choice is None or choice == "Back":
            return
        try:
            if choice == "Record Cash Payment":
                bill = record_cash_payment_menu(bill, payment_service) or bill
            elif choice == "Mark as Sent":
                bill = bill_service.mark_sent(bill.id, source=SOURCE)
                console.print("[green]Bill marked as sent.[/green]")
        except LedgerError as exc:
            console.print(f"[red]{exc.reason}: {exc.message}[/red]")


def record_cash_payment_menu(bill: Bill, payment_service: PaymentService) -> Bill | None:
    while True:
        raw = questionary.text(f"Amount received (pending {format_inr(bill.pending_amount)}):").ask()
        if raw is None:
            return None
        amount = parse_inr(raw)
        if amount is not None and amount > 0:
            break
        console.print("[red]Invalid amount. Try again.[/red]")
    notes = questionary.text("Notes (optional):").ask() or ""

    outcome = payment_service.record_cash_payment(bill.user_id, amount, bill_id=bill.id, notes=notes, source=SOURCE)
    console.print(f"[green]Payment {outcome.payment.transaction_id} recorded.[/green]")
    return outcome.bill
