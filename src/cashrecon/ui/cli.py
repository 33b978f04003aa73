from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from pathlib import Path
import sys
from typing import TypeVar

from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table
import typer

from cashrecon.core.config import ReconConfig, load_config_from_env
from cashrecon.reconcile.calculator import BalanceStatus, format_money
from cashrecon.reconcile.models import PAYMENT_FIELDS
from cashrecon.session import ReconciliationSession, open_session
from cashrecon.sync.monitor import StatusEvent

# Load environment variables from .env
load_dotenv()

T = TypeVar("T")

app = typer.Typer(
    help="cashrecon: daily route cash reconciliation, offline first.",
    no_args_is_help=True,
)

console = Console()
app_state: dict[str, ReconConfig] = {}

_LEVEL_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}

_STATUS_STYLES = {
    BalanceStatus.BALANCED: "green",
    BalanceStatus.SHORTAGE: "red",
    BalanceStatus.EXCESS: "yellow",
}


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}: {message}",
        level=level,
    )


def _print_status(event: StatusEvent) -> None:
    style = _LEVEL_STYLES.get(event.level, "white")
    console.print(f"[{style}]{event.message}[/{style}]")


def _run(
    action: Callable[[ReconciliationSession], Awaitable[T]],
    *,
    online: bool | None = False,
) -> T:
    """Open a session, run ``action`` against it and shut it down."""
    config: ReconConfig = app_state["config"]

    async def runner() -> T:
        session = await open_session(config, online=online)
        session.subscribe(on_status=_print_status)
        try:
            return await action(session)
        finally:
            await session.close()

    return asyncio.run(runner())


@app.callback()
def main_callback() -> None:
    """Load configuration and logging before any command runs."""
    try:
        config = load_config_from_env()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from e
    _configure_logging(config.log_level)
    app_state["config"] = config


def _render_summary(session: ReconciliationSession) -> None:
    totals = session.totals
    snapshot = session.snapshot
    currency = app_state["config"].currency

    table = Table(title="Cash Reconciliation", show_lines=False)
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("Route", snapshot.route or "Not Selected")
    table.add_row("Date", snapshot.date or "-")
    table.add_row("Items sold", str(totals.sold_count))
    table.add_row("Total Sales", f"{currency} {format_money(totals.total_sales)}")
    table.add_row("Discount (+15%)", f"{currency} {format_money(totals.discount_with_vat)}")
    table.add_row("Credit Sales", f"{currency} {format_money(totals.credit_sales)}")
    table.add_row("Bank Deposits", f"{currency} {format_money(totals.bank_deposits)}")
    table.add_row("Expected Cash", f"{currency} {format_money(totals.expected_cash)}")
    table.add_row("Cash Notes", f"{currency} {format_money(totals.notes_total)}")
    table.add_row("Coins", f"{currency} {format_money(totals.coins_total)}")
    table.add_row("Actual Cash", f"{currency} {format_money(totals.actual_cash)}")
    table.add_row("Difference", f"{currency} {format_money(totals.difference)}")
    console.print(table)

    style = _STATUS_STYLES[totals.status]
    console.print(f"[bold {style}]{totals.status_message}[/bold {style}]")
    if session.catalog.is_default:
        console.print("[dim]Catalog: using default[/dim]")
    console.print(f"Pending changes: {session.pending_count}")


@app.command("show")
def show() -> None:
    """Show the current working reconciliation."""

    async def action(session: ReconciliationSession) -> None:
        _render_summary(session)

    _run(action)


@app.command("catalog")
def catalog(
    search: str = typer.Option("", help="Filter by code, category or name"),
    sold_only: bool = typer.Option(False, "--sold-only", help="Only items sold"),
) -> None:
    """List catalog items with the quantities entered so far."""

    async def action(session: ReconciliationSession) -> None:
        table = Table(title="Catalog", show_lines=False)
        for column in ("Category", "Code", "Item", "Unit", "Price", "Qty", "Total"):
            table.add_column(column)
        for item in session.visible_items(search, sold_only=sold_only):
            qty = session.snapshot.quantity(item.code)
            table.add_row(
                item.category,
                item.code,
                item.name,
                item.unit,
                format_money(item.unit_price),
                str(qty) if qty else "",
                format_money(qty * item.unit_price),
            )
        console.print(table)

    _run(action)


@app.command("route")
def route(name: str) -> None:
    """Select the route being reconciled."""

    async def action(session: ReconciliationSession) -> None:
        session.select_route(name)
        console.print(f"Route: {session.snapshot.route}")

    _run(action)


@app.command("date")
def sales_date(
    value: str | None = typer.Argument(None, help="Sales date (YYYY-MM-DD), default today"),
) -> None:
    """Set the sales date."""
    chosen = value or date.today().isoformat()

    async def action(session: ReconciliationSession) -> None:
        try:
            session.set_date(chosen)
        except ValueError as e:
            console.print(f"[red]Invalid date {chosen!r}: {e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(f"Date: {session.snapshot.date}")

    _run(action)


@app.command("qty")
def quantity(code: str, qty: int) -> None:
    """Set the sold quantity for a product code."""

    async def action(session: ReconciliationSession) -> None:
        try:
            totals = session.set_quantity(code, qty)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(f"Total Sales: {format_money(totals.total_sales)}")

    _run(action)


@app.command("pay")
def payment(field: str, amount: float) -> None:
    """Set a payment field (discount-base, credit-sales, bank-pos, ...)."""
    field_name = field.replace("-", "_").lower()

    async def action(session: ReconciliationSession) -> None:
        try:
            totals = session.set_payment(field_name, amount)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            console.print("Fields: " + ", ".join(f.replace("_", "-") for f in PAYMENT_FIELDS))
            raise typer.Exit(code=1) from e
        console.print(f"Expected Cash: {format_money(totals.expected_cash)}")

    _run(action)


@app.command("count")
def cash_count(
    kind: str = typer.Argument(..., help="note or coin"),
    denomination: str = typer.Argument(..., help="e.g. 500, 5, 0.50"),
    count: int = typer.Argument(...),
) -> None:
    """Set how many notes or coins of a denomination were counted."""
    if kind not in {"note", "coin"}:
        console.print("[red]kind must be 'note' or 'coin'[/red]")
        raise typer.Exit(code=1)

    async def action(session: ReconciliationSession) -> None:
        try:
            totals = session.set_cash_count(kind, denomination, count)  # type: ignore[arg-type]
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(f"Actual Cash: {format_money(totals.actual_cash)}")
        console.print(totals.status_message)

    _run(action)


@app.command("prefill")
def prefill() -> None:
    """Fill quantities from the ledger's inventory-based sales calculation."""

    async def action(session: ReconciliationSession) -> bool:
        return await session.prefill_from_inventory()

    if not _run(action, online=None):
        raise typer.Exit(code=1)


@app.command("save")
def save() -> None:
    """Finalize and send the reconciliation, queueing it if the ledger is unreachable."""

    async def action(session: ReconciliationSession) -> str:
        outcome = await session.save()
        if outcome.detail:
            console.print(f"[dim]{outcome.detail}[/dim]")
        return outcome.status

    if _run(action, online=None) == "rejected":
        raise typer.Exit(code=1)


@app.command("sync")
def sync() -> None:
    """Attempt delivery of every pending change once."""

    async def action(session: ReconciliationSession) -> int:
        if not session.monitor.is_online:
            console.print("[yellow]Ledger unreachable; pending changes kept[/yellow]")
            return session.pending_count
        result = await session.sync_pending()
        console.print(
            f"Delivered {len(result.succeeded)}, still pending {len(result.still_pending)}"
        )
        return len(result.still_pending)

    _run(action, online=None)


@app.command("export")
def export(
    output: Path = typer.Option(Path("."), help="Directory for the CSV report"),  # noqa: B008
) -> None:
    """Write the CSV report for the current reconciliation."""

    async def action(session: ReconciliationSession) -> Path:
        report = session.export_report()
        output.mkdir(parents=True, exist_ok=True)
        path = output / report.filename
        path.write_text(report.content, encoding="utf-8")
        return path

    path = _run(action)
    console.print(f"[green]Report exported![/green] {path}")


@app.command("clear")
def clear(
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
) -> None:
    """Clear quantities, payments and cash counts."""
    if not yes and not typer.confirm("Clear all data?"):
        raise typer.Abort()

    async def action(session: ReconciliationSession) -> None:
        session.clear()

    _run(action)


@app.command("watch")
def watch() -> None:
    """Stay connected: heartbeat, and sync pending changes whenever online."""
    interval = app_state["config"].heartbeat_interval

    async def action(session: ReconciliationSession) -> None:
        session.subscribe(
            on_indicator=lambda indicator: console.print(f"[dim]Sync: {indicator}[/dim]")
        )
        # No platform connectivity signal here: reachability of the ledger
        # stands in for it.
        while True:
            reachable = await session.monitor.check_connection()
            await session.connectivity_changed(reachable)
            await asyncio.sleep(interval)

    try:
        _run(action, online=False)
    except KeyboardInterrupt:
        console.print("Stopped.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
