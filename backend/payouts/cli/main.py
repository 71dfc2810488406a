"""Operator CLI entry point."""

from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from payouts.services._helpers import validate_period

app = typer.Typer(
    name="payouts",
    help="Creator payout ledger operator CLI",
    add_completion=False,
)

console = Console()


def parse_period(period: str) -> str:
    try:
        return validate_period(period)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def _batch_table(title: str, result) -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Succeeded", str(len(result.succeeded)))
    table.add_row("Skipped", str(len(result.skipped)))
    table.add_row("Failed", str(len(result.failed)))
    table.add_row("Total Amount", str(result.total_amount))
    return table


def _print_failures(result) -> None:
    if not result.failed:
        return
    console.print("\n[red]Failures:[/red]")
    for failure in result.failed[:20]:
        console.print(f"  {failure['id']}: {failure['code']}: {escape(failure['error'])}")
    if len(result.failed) > 20:
        console.print(f"  ... and {len(result.failed) - 20} more")


@app.command()
def init_db(
    force: bool = typer.Option(False, "--force", "-f", help="Drop and recreate tables"),
):
    """Initialize the database schema."""
    from db.connection import get_engine, init_database
    from db.models import Base

    with console.status("Initializing database..."):
        if force:
            Base.metadata.drop_all(get_engine())
            console.print("[yellow]Dropped existing tables[/yellow]")
        init_database()

    console.print("[green]Database initialized successfully[/green]")


@app.command()
def generate(
    period: Optional[str] = typer.Option(
        None, "--period", "-p", help="Period to close (YYYY-MM); defaults to last month"
    ),
    creator: Optional[str] = typer.Option(None, "--creator", "-c", help="Single creator only"),
    parallel: bool = typer.Option(True, "--parallel/--sequential", help="Bounded parallelism"),
):
    """Generate monthly reports for a closed period."""
    from db.connection import get_session, get_session_factory
    from payouts.services.errors import PayoutError
    from payouts.services.report_generator import ReportGenerator

    target = parse_period(period) if period else None

    if creator:
        if target is None:
            raise typer.BadParameter("--period is required with --creator")
        try:
            with get_session() as session:
                report = ReportGenerator(session).generate_for_creator(creator, target)
                summary = (report.report_id, str(report.payout_amount)) if report else None
        except PayoutError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        if summary is None:
            console.print(f"[yellow]No earnings for {creator} in {target}[/yellow]")
        else:
            console.print(f"[green]Generated {summary[0]} for {summary[1]}[/green]")
        return

    with get_session() as session:
        factory = get_session_factory() if parallel else None
        with console.status("Generating reports..."):
            result = ReportGenerator(session, session_factory=factory).run(target)

    console.print(f"Run [cyan]{result.run_id}[/cyan] for period [cyan]{result.period}[/cyan]")
    console.print(_batch_table("Report Generation", result.results))
    _print_failures(result.results)
    if not result.results.ok:
        raise typer.Exit(1)


@app.command()
def sweep(
    parallel: bool = typer.Option(True, "--parallel/--sequential", help="Bounded parallelism"),
):
    """Unlock every report whose lock period has elapsed."""
    from db.connection import get_session, get_session_factory
    from payouts.services.lock_unlocker import LockUnlocker

    with get_session() as session:
        factory = get_session_factory() if parallel else None
        with console.status("Unlocking reports..."):
            result = LockUnlocker(session, session_factory=factory).sweep()

    console.print(_batch_table(f"Unlock Sweep as of {result.as_of}", result.results))
    _print_failures(result.results)
    if not result.results.ok:
        raise typer.Exit(1)


@app.command()
def unlock(
    report_ids: list[str] = typer.Argument(..., help="Report ids to unlock"),
    operator: str = typer.Option(..., "--operator", "-o", help="Operator id"),
):
    """Manually unlock reports whose lock period has elapsed."""
    from db.connection import get_session
    from payouts.services.lock_unlocker import LockUnlocker

    with get_session() as session:
        result = LockUnlocker(session).unlock_many(report_ids, operator)

    console.print(_batch_table("Manual Unlock", result))
    _print_failures(result)
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def approve(
    request_ids: list[str] = typer.Argument(..., help="Withdrawal request ids"),
    operator: str = typer.Option(..., "--operator", "-o", help="Operator id"),
):
    """Approve pending withdrawal requests."""
    from db.connection import get_session
    from db.enums import BulkAction
    from payouts.services.withdrawals import WithdrawalProcessor

    with get_session() as session:
        result = WithdrawalProcessor(session).bulk_process(
            request_ids, BulkAction.APPROVE, operator
        )

    console.print(_batch_table("Approvals", result))
    _print_failures(result)
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def reject(
    request_ids: list[str] = typer.Argument(..., help="Withdrawal request ids"),
    operator: str = typer.Option(..., "--operator", "-o", help="Operator id"),
    reason: str = typer.Option(..., "--reason", "-r", help="Rejection reason"),
):
    """Reject pending withdrawal requests."""
    from db.connection import get_session
    from db.enums import BulkAction
    from payouts.services.withdrawals import WithdrawalProcessor

    with get_session() as session:
        result = WithdrawalProcessor(session).bulk_process(
            request_ids, BulkAction.REJECT, operator, reason
        )

    console.print(_batch_table("Rejections", result))
    _print_failures(result)
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def reconcile(
    creator: Optional[str] = typer.Option(None, "--creator", "-c", help="Single creator only"),
):
    """Recompute ledgers from reports and withdrawals and list mismatches."""
    from db.connection import get_session
    from payouts.services.reconciliation import ReconciliationService

    with get_session() as session:
        result = ReconciliationService(session).run(creator)

    if result.consistent:
        console.print(
            f"[green]All {result.creators_checked} ledgers consistent[/green] (run {result.run_id})"
        )
        return

    table = Table(title="Ledger Mismatches")
    table.add_column("Creator", style="cyan")
    table.add_column("Check")
    table.add_column("Expected", justify="right")
    table.add_column("Actual", justify="right", style="red")
    for m in result.mismatches:
        table.add_row(m["creator_id"], m["check"], m["expected"], m["actual"])
    console.print(table)
    raise typer.Exit(1)


@app.command()
def ledger(
    creator: str = typer.Argument(..., help="Creator id"),
):
    """Show a creator's balances."""
    from db.connection import get_session
    from payouts.services.errors import NotFoundError
    from payouts.services.ledger import LedgerService, ledger_to_dict

    try:
        with get_session() as session:
            balances = ledger_to_dict(LedgerService(session).get_ledger(creator))
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Ledger: {creator}")
    table.add_column("Bucket", style="cyan")
    table.add_column("Amount", justify="right", style="green")
    for key in ("total_earnings", "locked_balance", "available_balance", "total_withdrawn"):
        table.add_row(key.replace("_", " ").title(), f"{Decimal(balances[key]):,.2f}")
    table.add_row("Updated", balances["updated_at"])
    console.print(table)


if __name__ == "__main__":
    app()
