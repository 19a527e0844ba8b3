"""bin/review — Review reconciled transactions for a wallet.

Shows stored transactions with uncategorized rows highlighted, and the
list of imported OFX batches.
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from statement_sync.lib.config import Settings, get_project_root
from statement_sync.lib.models import DEFAULT_CATEGORY, TransactionKind
from statement_sync.lib.state import ImportedBatches, SqliteTransactionStore

console = Console()

_KIND_STYLE = {
    TransactionKind.EXPENSE: "red",
    TransactionKind.DEPOSIT: "green",
    TransactionKind.INVESTMENT: "blue",
}


@click.command()
@click.option("--wallet", "-w", required=True, help="Wallet to review")
@click.option("--root", type=click.Path(exists=True), default=None, help="Project root directory")
@click.option("--uncategorized", "-u", is_flag=True, help="Show only uncategorized transactions")
@click.option("--limit", "-n", type=int, default=None, help="Show at most N transactions")
@click.option("--batches", "-b", "show_batches", is_flag=True, help="List imported OFX batches")
def main(
    wallet: str, root: str | None, uncategorized: bool, limit: int | None, show_batches: bool
) -> None:
    """Review stored transactions for a wallet."""
    project_root = Path(root) if root else get_project_root()
    settings = Settings.load(project_root)

    if show_batches:
        with ImportedBatches(settings.db_path) as batches:
            rows = batches.list_batches(wallet)
        if not rows:
            console.print(f"[green]No imported batches for {wallet}.[/green]")
            return
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Batch")
        table.add_column("Source")
        table.add_column("Imported at")
        table.add_column("Created", justify="right")
        table.add_column("Updated", justify="right")
        table.add_column("Errors", justify="right")
        for row in rows:
            table.add_row(
                str(row["batch_id"]),
                str(row["source"] or ""),
                str(row["imported_at"])[:19],
                str(row["created"]),
                str(row["updated"]),
                str(row["errors"]),
                style="yellow" if row["errors"] else "",
            )
        console.print(table)
        return

    with SqliteTransactionStore(settings.db_path, wallet) as store:
        transactions = store.list_transactions(limit)

    if not transactions:
        console.print(f"[green]No transactions stored for {wallet}.[/green]")
        return

    if uncategorized:
        transactions = [t for t in transactions if t.category == DEFAULT_CATEGORY]

    total = len(transactions)
    uncat = sum(1 for t in transactions if t.category == DEFAULT_CATEGORY)
    console.print(f"\n[bold]Transactions:[/bold] {total}")
    console.print(f"[yellow]Uncategorized:[/yellow] {uncat}\n")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Date", width=12)
    table.add_column("Name", width=40)
    table.add_column("Amount", width=14, justify="right")
    table.add_column("Kind", width=11)
    table.add_column("Category", width=16)
    table.add_column("Source", width=12)

    for txn in transactions:
        style = "yellow" if txn.category == DEFAULT_CATEGORY else ""
        table.add_row(
            txn.date.isoformat(),
            txn.name,
            f"{txn.amount:,.2f}",
            f"[{_KIND_STYLE[txn.kind]}]{txn.kind.value}[/]",
            txn.category,
            str(txn.metadata.get("source", "")),
            style=style,
        )

    console.print(table)

    if uncat > 0:
        console.print(
            f"\n[yellow]{uncat} uncategorized transactions.[/yellow] "
            "Add codes or phrases to rules/categories.yaml, then re-ingest."
        )


if __name__ == "__main__":
    main()
