"""Reconciliation synchronizer — idempotent create-or-update against a store.

Records are processed strictly in input order. A failure in one record is
recorded on the SyncResult and never stops the batch.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Union

from .errors import DuplicateFingerprint, InconsistentSign
from .logging_setup import get_logger
from .models import (
    CanonicalTransaction,
    ClassifiedTransaction,
    RecordError,
    SyncResult,
    TransactionKind,
    TransactionMetadata,
)
from .store import TransactionStore

_logger = get_logger("statement_sync.synchronizer")


@dataclass(frozen=True)
class PreparedRecord:
    """A classified transaction ready for the store."""

    classified: ClassifiedTransaction
    fingerprint: str
    name: str
    metadata: TransactionMetadata
    ref: str


SyncItem = Union[PreparedRecord, RecordError]


def drop_zero_values(metadata: TransactionMetadata) -> TransactionMetadata:
    """Drop None, empty strings and numeric zeros. Booleans are kept."""
    compact: dict[str, object] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if not isinstance(value, bool) and isinstance(value, (int, float, Decimal)) and value == 0:
            continue
        compact[key] = value
    return compact  # type: ignore[return-value]


def correct_kind(kind: TransactionKind, amount: Decimal) -> TransactionKind:
    """Re-kind an expense/deposit whose sign contradicts it.

    Investments follow the debit/credit sign and are never re-kinded.
    """
    if kind is TransactionKind.EXPENSE and amount > 0:
        return TransactionKind.DEPOSIT
    if kind is TransactionKind.DEPOSIT and amount < 0:
        return TransactionKind.EXPENSE
    return kind


class Synchronizer:
    def __init__(self, store: TransactionStore, wallet_id: str | None = None) -> None:
        self.store = store
        self.wallet_id = wallet_id

    def sync(self, records: Iterable[SyncItem], result: SyncResult | None = None) -> SyncResult:
        """Synchronize records in order and return the aggregated counts.

        ``RecordError`` items (records that already failed preparation) are
        counted as errors without touching the store.
        """
        result = result if result is not None else SyncResult()
        for record in records:
            if isinstance(record, RecordError):
                result.add_error(record.record_ref, record.reason)
                continue
            try:
                self._sync_one(record, result)
            except Exception as e:
                reason = str(e) or type(e).__name__
                _logger.warning("sync:record_failed ref=%s reason=%s", record.ref, reason)
                result.add_error(record.ref, reason)
        _logger.info(
            "sync:done wallet=%s created=%d updated=%d errors=%d",
            self.wallet_id,
            result.created,
            result.updated,
            result.errors,
        )
        return result

    def _sync_one(self, record: PreparedRecord, result: SyncResult) -> None:
        classified = record.classified
        metadata: TransactionMetadata = dict(record.metadata)  # type: ignore[assignment]
        kind = correct_kind(classified.kind, classified.amount)
        if kind is not classified.kind:
            _logger.info(
                "sync:kind_corrected ref=%s reason=%s from=%s to=%s amount=%s",
                record.ref,
                InconsistentSign.__name__,
                classified.kind.value,
                kind.value,
                classified.amount,
            )
            metadata["kind_corrected"] = True
        metadata = drop_zero_values(metadata)

        existing = self.store.find_by_fingerprint(record.fingerprint)
        if existing is None:
            try:
                self.store.create(
                    CanonicalTransaction(
                        id=str(uuid.uuid4()),
                        date=classified.date,
                        name=record.name,
                        amount=classified.amount,
                        kind=kind,
                        category=classified.category,
                        metadata=metadata,
                        wallet_id=self.wallet_id,
                    )
                )
                result.created += 1
                return
            except DuplicateFingerprint:
                # Another writer created it between lookup and insert
                existing = self.store.find_by_fingerprint(record.fingerprint)
                if existing is None:
                    raise

        merged: TransactionMetadata = {**existing.metadata, **metadata}  # type: ignore[typeddict-item]
        if "kind_corrected" not in metadata:
            # flag reflects the latest run only
            merged.pop("kind_corrected", None)
        self.store.update(
            existing.id,
            {
                "amount": classified.amount,
                "kind": kind,
                "category": classified.category,
                "metadata": merged,
            },
        )
        result.updated += 1
