"""SQLite state management for reconciliation.

Manages two tables, usually in the same database file:
- transactions: canonical transactions, unique per (wallet, fingerprint)
- imported_batches: batch identifiers of fully processed import files
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

from .errors import DuplicateFingerprint, StoreFailure
from .models import CanonicalTransaction, SyncResult, TransactionKind
from .store import TransactionPatch


class StateDB:
    """Generic SQLite state store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "StateDB":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _wallet_key(wallet_id: str | None) -> str:
    # UNIQUE treats NULLs as distinct, so "no wallet" is stored as ''
    return wallet_id or ""


class SqliteTransactionStore(StateDB):
    """Canonical transactions for one wallet scope.

    Every create/update commits immediately; there is no batch-wide
    transaction, so an interrupted batch keeps its progress.
    """

    def __init__(self, db_path: Path, wallet_id: str | None = None) -> None:
        self.wallet_id = wallet_id
        super().__init__(db_path)

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                wallet_id TEXT NOT NULL DEFAULT '',
                fingerprint TEXT NOT NULL,
                date TEXT NOT NULL,
                name TEXT NOT NULL,
                amount TEXT NOT NULL,
                kind TEXT NOT NULL,
                category TEXT NOT NULL,
                metadata TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (wallet_id, fingerprint)
            )
        """)
        self._conn.commit()

    @staticmethod
    def _from_row(row: sqlite3.Row) -> CanonicalTransaction:
        return CanonicalTransaction(
            id=row["id"],
            date=date.fromisoformat(row["date"]),
            name=row["name"],
            amount=Decimal(row["amount"]),
            kind=TransactionKind(row["kind"]),
            category=row["category"],
            metadata=json.loads(row["metadata"]),
            wallet_id=row["wallet_id"] or None,
        )

    def find_by_fingerprint(self, fingerprint: str) -> CanonicalTransaction | None:
        try:
            row = self._conn.execute(
                "SELECT * FROM transactions WHERE wallet_id = ? AND fingerprint = ?",
                (_wallet_key(self.wallet_id), fingerprint),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreFailure(f"Lookup failed for {fingerprint!r}: {e}") from e
        return self._from_row(row) if row is not None else None

    def create(self, record: CanonicalTransaction) -> CanonicalTransaction:
        now = datetime.now(timezone.utc).isoformat()
        wallet_id = record.wallet_id or self.wallet_id
        try:
            self._conn.execute(
                "INSERT INTO transactions (id, wallet_id, fingerprint, date, name, amount, "
                "kind, category, metadata, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    _wallet_key(wallet_id),
                    record.fingerprint,
                    record.date.isoformat(),
                    record.name,
                    str(record.amount),
                    record.kind.value,
                    record.category,
                    json.dumps(record.metadata, ensure_ascii=False, sort_keys=True),
                    now,
                    now,
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise DuplicateFingerprint(record.fingerprint) from e
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StoreFailure(f"Create failed for {record.fingerprint!r}: {e}") from e
        record.wallet_id = wallet_id
        return record

    def update(self, id: str, patch: TransactionPatch) -> CanonicalTransaction:
        columns: dict[str, object] = {}
        if "amount" in patch:
            columns["amount"] = str(patch["amount"])
        if "kind" in patch:
            columns["kind"] = TransactionKind(patch["kind"]).value
        if "category" in patch:
            columns["category"] = patch["category"]
        if "metadata" in patch:
            columns["metadata"] = json.dumps(patch["metadata"], ensure_ascii=False, sort_keys=True)
        columns["updated_at"] = datetime.now(timezone.utc).isoformat()

        assignments = ", ".join(f"{name} = ?" for name in columns)
        try:
            cur = self._conn.execute(
                f"UPDATE transactions SET {assignments} WHERE id = ?",
                (*columns.values(), id),
            )
            self._conn.commit()
            if cur.rowcount == 0:
                raise StoreFailure(f"Transaction {id!r} not found")
            row = self._conn.execute("SELECT * FROM transactions WHERE id = ?", (id,)).fetchone()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StoreFailure(f"Update failed for {id!r}: {e}") from e
        return self._from_row(row)

    def list_transactions(self, limit: int | None = None) -> list[CanonicalTransaction]:
        sql = "SELECT * FROM transactions WHERE wallet_id = ? ORDER BY date, created_at"
        params: tuple[object, ...] = (_wallet_key(self.wallet_id),)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        return [self._from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def last_date(self) -> date | None:
        """Date of the newest stored transaction, None for an empty wallet."""
        row = self._conn.execute(
            "SELECT MAX(date) FROM transactions WHERE wallet_id = ?",
            (_wallet_key(self.wallet_id),),
        ).fetchone()
        return date.fromisoformat(row[0]) if row and row[0] else None

    def count(self) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM transactions WHERE wallet_id = ?",
            (_wallet_key(self.wallet_id),),
        ).fetchone()
        return row[0] if row else 0


class ImportedBatches(StateDB):
    """Tracks batch identifiers of import files that were fully processed."""

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS imported_batches (
                wallet_id TEXT NOT NULL DEFAULT '',
                batch_id TEXT NOT NULL,
                source TEXT,
                imported_at TEXT NOT NULL,
                created INTEGER NOT NULL DEFAULT 0,
                updated INTEGER NOT NULL DEFAULT 0,
                errors INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (wallet_id, batch_id)
            )
        """)
        self._conn.commit()

    def is_imported(self, batch_id: str, wallet_id: str | None = None) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM imported_batches WHERE wallet_id = ? AND batch_id = ?",
            (_wallet_key(wallet_id), batch_id),
        ).fetchone()
        return row is not None

    def mark_imported(
        self,
        batch_id: str,
        source: str,
        result: SyncResult,
        wallet_id: str | None = None,
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self._conn.execute(
            "INSERT OR IGNORE INTO imported_batches "
            "(wallet_id, batch_id, source, imported_at, created, updated, errors) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                _wallet_key(wallet_id),
                batch_id,
                source,
                now,
                result.created,
                result.updated,
                result.errors,
            ),
        )
        self._conn.commit()

    def list_batches(self, wallet_id: str | None = None) -> list[dict[str, object]]:
        rows = self._conn.execute(
            "SELECT * FROM imported_batches WHERE wallet_id = ? ORDER BY imported_at",
            (_wallet_key(wallet_id),),
        ).fetchall()
        return [dict(r) for r in rows]

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM imported_batches").fetchone()
        return row[0] if row else 0
