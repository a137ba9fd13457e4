"""
CLI interface for Paid Search.

Connects a local signing wallet, pays the per-query fee and shows results.
"""

import asyncio
import os
import sqlite3
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from paid_search.config.loader import PRIVATE_KEY_ENV, AppConfig, load_config
from paid_search.core.errors import PaidSearchError
from paid_search.core.orchestrator import (
    DEFAULT_LANGUAGE,
    DEFAULT_LIMIT,
    SearchOutcome,
    create_orchestrator,
)
from paid_search.storage.db import initialize_schema
from paid_search.storage.history import HistoryStore
from paid_search.storage.models import PaymentStatus, RequestStatus
from paid_search.wallet.provider import Web3WalletProvider

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DEFAULT_CONFIG_PATH = "paid-search.yaml"

ConfigOption = typer.Option(
    DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML configuration file"
)


def _load(config_path: str) -> AppConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _build_provider(config: AppConfig) -> Optional[Web3WalletProvider]:
    """Wallet from the environment; None leaves the session without a wallet."""
    private_key = os.environ.get(PRIVATE_KEY_ENV)
    if not private_key:
        return None
    return Web3WalletProvider(private_key, config.network.rpc_url)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Paid Search CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Paid Search - Use --help to see available commands")


@app.command()
def init(config_path: str = ConfigOption):
    """Initialize the history database."""
    config = _load(config_path)
    try:
        initialize_schema(config.storage.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def balance(config_path: str = ConfigOption):
    """Connect the wallet and show its balance."""
    config = _load(config_path)

    async def _run():
        orchestrator = create_orchestrator(config, _build_provider(config))
        try:
            address = await orchestrator.connect()
            return address, orchestrator.session
        finally:
            await orchestrator.aclose()

    try:
        address, session = asyncio.run(_run())
    except PaidSearchError as e:
        console.print(f"[red]Wallet error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    suffix = "" if session.balance_verified else " [yellow](unverified)[/]"
    console.print(f"[bold]{address}[/]")
    console.print(f"Balance: {session.balance:.2f} {config.network.currency_symbol}{suffix}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    limit: str = typer.Option(
        str(DEFAULT_LIMIT), "--limit", "-l", help="Maximum records per data source"
    ),
    lang: str = typer.Option(DEFAULT_LANGUAGE, "--lang", help="Response language"),
    config_path: str = ConfigOption
):
    """
    Pay the per-query fee and run a search.

    The fee is transferred first; the query is sent only once the
    transfer is confirmed on-chain.
    """
    config = _load(config_path)

    async def _run() -> SearchOutcome:
        orchestrator = create_orchestrator(config, _build_provider(config))
        try:
            await orchestrator.connect()
            return await orchestrator.search(query, limit, lang)
        finally:
            await orchestrator.aclose()

    try:
        outcome = asyncio.run(_run())
    except PaidSearchError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except sqlite3.Error as e:
        console.print(f"[red]History error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if outcome.payment is not None and outcome.payment.tx_hash:
        console.print(f"Payment tx: {config.network.explorer_tx_url(outcome.payment.tx_hash)}")

    if not outcome.success:
        console.print(f"[red]Search failed:[/] {outcome.error}")
        sys.exit(EXIT_CODE_FAIL)

    _display_response(outcome)
    sys.exit(EXIT_CODE_PASS)


def _display_response(outcome: SearchOutcome):
    """Render one table per data source."""
    response = outcome.response
    console.print(f"\n[bold]Results found in {response.source_count} data source(s)[/bold]")
    console.print("-" * 40)

    for source in response.sources.values():
        console.print(f"\n[bold]{source.name}[/bold]")
        if source.description:
            console.print(f"[dim]{source.description}[/]")
        if not source.records:
            console.print("No records")
            continue

        columns = []
        for record in source.records:
            for key in record:
                if key not in columns:
                    columns.append(key)

        table = Table()
        for column in columns:
            table.add_column(str(column))
        for record in source.records:
            table.add_row(*[str(record.get(column, "")) for column in columns])
        console.print(table)


_PAYMENT_STYLES = {
    PaymentStatus.CONFIRMED: "green",
    PaymentStatus.PENDING: "yellow",
    PaymentStatus.FAILED: "red",
}


@app.command()
def history(
    payments: bool = typer.Option(
        True, "--payments/--no-payments", help="Show payment history"
    ),
    requests: bool = typer.Option(
        True, "--requests/--no-requests", help="Show request history"
    ),
    config_path: str = ConfigOption
):
    """Show recorded payments and searches, newest first."""
    config = _load(config_path)
    store = HistoryStore(config.storage.db_path)
    currency = config.network.currency_symbol

    if requests:
        table = Table(title="Requests")
        for column in ("Time", "Query", "Cost", "Results", "Status"):
            table.add_column(column)
        for record in reversed(store.requests()):
            status = (
                "[green]success[/]" if record.status == RequestStatus.SUCCESS
                else f"[red]error[/] {record.error_message or ''}"
            )
            table.add_row(
                record.timestamp, record.query, f"{record.cost:g} {currency}",
                str(record.results), status
            )
        console.print(table)

    if payments:
        table = Table(title="Payments")
        for column in ("Time", "Amount", "Tx", "Status"):
            table.add_column(column)
        for record in reversed(store.payments()):
            style = _PAYMENT_STYLES[record.status]
            table.add_row(
                record.timestamp, f"{record.amount:g} {currency}", record.tx_hash,
                f"[{style}]{record.status.value}[/]"
            )
        console.print(table)

    sys.exit(EXIT_CODE_PASS)


@app.command()
def notifications(
    state: Optional[str] = typer.Argument(None, help="'on' or 'off'; omit to show"),
    config_path: str = ConfigOption
):
    """Show or change whether lifecycle notifications are sent."""
    config = _load(config_path)
    store = HistoryStore(config.storage.db_path)

    if state is not None:
        if state.lower() not in ("on", "off"):
            console.print(f"[red]Error:[/] expected 'on' or 'off', got '{state}'")
            sys.exit(EXIT_CODE_FAIL)
        store.set_notifications_enabled(state.lower() == "on")

    label = "enabled" if store.notifications_enabled else "disabled"
    console.print(f"Notifications {label}")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
