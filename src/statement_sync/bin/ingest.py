"""bin/ingest — Statement ingestion orchestrator.

Synchronizes ledger records into the transaction store. Supports:
- OFX file import (--source ofx --file F), rejected if already imported
- Bank extract API pull (--source bank-extract), deduplicated per record
"""

from __future__ import annotations

from pathlib import Path

import click

from statement_sync.lib.bank_extract import BankExtractClient, fetch_access_token, sync_window
from statement_sync.lib.classifier import CategoryTables, Classifier
from statement_sync.lib.config import Settings, get_project_root
from statement_sync.lib.errors import IngestError
from statement_sync.lib.gatekeeper import BatchGatekeeper
from statement_sync.lib.logging_setup import configure_logging
from statement_sync.lib.models import SyncResult
from statement_sync.lib.ofx_file import read_ofx_file
from statement_sync.lib.pipeline import import_batch, reconcile
from statement_sync.lib.state import ImportedBatches, SqliteTransactionStore


def ingest_ofx(
    settings: Settings, ofx_file: str, wallet: str, classifier: Classifier, quiet: bool = False
) -> tuple[str, SyncResult]:
    """Import one OFX file into a wallet."""
    statement = read_ofx_file(Path(ofx_file))
    if not quiet:
        click.echo(
            f"Importing {Path(ofx_file).name} ({statement.bank}, {len(statement.entries)} entries)..."
        )
    with SqliteTransactionStore(settings.db_path, wallet) as store, \
            ImportedBatches(settings.db_path) as batches:
        result = import_batch(
            statement.entries,
            statement.batch_id,
            store,
            BatchGatekeeper(batches, wallet, source="ofx"),
            classifier,
            source="ofx",
            wallet_id=wallet,
        )
    return statement.batch_id, result


def ingest_bank_extract(
    settings: Settings,
    wallet: str,
    days: int | None,
    classifier: Classifier,
    quiet: bool = False,
) -> SyncResult:
    """Pull the extract window for a wallet and reconcile it."""
    bank = settings.bank_extract
    account = bank.wallets.get(wallet)
    if account is None:
        click.echo(
            f"Error: wallet '{wallet}' has no bank_extract account in statement_sync.yaml",
            err=True,
        )
        raise SystemExit(1)
    if not bank.app_key:
        click.echo("Error: bank_extract.app_key (or STATEMENT_SYNC_BB_APP_KEY) not set", err=True)
        raise SystemExit(1)

    token = bank.access_token
    if not token:
        if not bank.client_basic:
            click.echo(
                "Error: set STATEMENT_SYNC_BB_ACCESS_TOKEN or STATEMENT_SYNC_BB_CLIENT_BASIC",
                err=True,
            )
            raise SystemExit(1)
        token = fetch_access_token(
            bank.client_basic, cert=bank.client_cert, ca=str(bank.ca) if bank.ca else None
        )

    client = BankExtractClient(
        token,
        bank.app_key,
        base_url=bank.base_url,
        cert=bank.client_cert,
        ca=str(bank.ca) if bank.ca else None,
        page_size=bank.page_size,
        max_pages=bank.max_pages,
    )

    with SqliteTransactionStore(settings.db_path, wallet) as store:
        start, end = sync_window(store.last_date(), days=days)
        if not quiet:
            click.echo(f"Fetching extract for {wallet}: {start.isoformat()} → {end.isoformat()}...")
        entries = client.fetch_entries(account.agency, account.account, start, end)
        if not quiet:
            click.echo(f"  Received {len(entries)} entries")
        return reconcile(entries, store, classifier, source="bank-extract", wallet_id=wallet)


def print_summary(result: SyncResult) -> None:
    click.echo(f"  Created: {result.created}")
    click.echo(f"  Updated: {result.updated}")
    click.echo(f"  Errors:  {result.errors}")
    if result.skipped_markers:
        click.echo(f"  Skipped {result.skipped_markers} balance line(s)")
    if result.reported_balance is not None:
        click.echo(f"  Reported balance: {result.reported_balance}")
    for detail in result.error_details:
        click.echo(f"    ! {detail.record_ref}: {detail.reason}")


@click.command()
@click.option("--source", "-s", type=click.Choice(["ofx", "bank-extract"]), default="ofx",
              help="Data source")
@click.option("--file", "-f", "ofx_file", type=click.Path(exists=True), help="OFX file to import")
@click.option("--wallet", "-w", required=True, help="Wallet the records belong to")
@click.option("--days", "-d", type=int, default=None,
              help="Days of history to fetch (bank-extract only; default: sync window)")
@click.option("--root", type=click.Path(exists=True), default=None, help="Project root directory")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def main(
    source: str,
    ofx_file: str | None,
    wallet: str,
    days: int | None,
    root: str | None,
    as_json: bool,
) -> None:
    """Ingest bank statements and reconcile them with the transaction store."""
    project_root = Path(root) if root else get_project_root()
    settings = Settings.load(project_root)
    configure_logging(settings.log_level)
    classifier = Classifier(CategoryTables.load(settings.rules_path))

    batch_id = None
    try:
        if source == "bank-extract":
            result = ingest_bank_extract(settings, wallet, days, classifier, quiet=as_json)
        else:
            if ofx_file is None:
                click.echo("Error: --file required for OFX import", err=True)
                raise SystemExit(1)
            batch_id, result = ingest_ofx(settings, ofx_file, wallet, classifier, quiet=as_json)
    except IngestError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(result.to_json())
        return

    if result.already_imported:
        click.echo(f"  Already imported (batch {batch_id}). Nothing to do.")
        return

    print_summary(result)
    click.echo("Done. Run 'sync-review' to review stored transactions.")


if __name__ == "__main__":
    main()
