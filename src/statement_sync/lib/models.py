"""Shared record types — raw ledger entries through to canonical transactions.

The pipeline moves one record through these shapes in order:
RawLedgerEntry -> NormalizedTransaction -> ClassifiedTransaction ->
CanonicalTransaction. Every intermediate shape is frozen; corrections
produce copies.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, TypedDict


class TransactionKind(str, Enum):
    EXPENSE = "expense"
    DEPOSIT = "deposit"
    INVESTMENT = "investment"


DEFAULT_CATEGORY = "OTHER"


@dataclass(frozen=True)
class RawLedgerEntry:
    """Source-native record as handed over by an adapter."""

    description: str
    encoded_date: str | int  # DDMMYYYY, 7 digits when the day lost its leading zero
    magnitude: Decimal
    complementary_description: str = ""
    sign_indicator: str | None = None  # "C" credit / "D" debit
    entry_type_indicator: str | None = None
    transaction_code: int | None = None
    lot_number: int | None = None
    document_number: int | None = None
    counterparty_tax_id: str | None = None
    counterparty_person_type: str | None = None  # "F" person / "J" company
    external_id: str | None = None  # e.g. OFX FITID
    bank_name: str | None = None

    @property
    def reference(self) -> str:
        """Short human-readable handle used in error reports."""
        if self.external_id:
            return self.external_id
        parts = [str(self.encoded_date)]
        if self.document_number:
            parts.append(f"doc={self.document_number}")
        if self.lot_number:
            parts.append(f"lot={self.lot_number}")
        parts.append(self.description[:40])
        return " ".join(parts)


@dataclass(frozen=True)
class NormalizedTransaction:
    """A raw entry with a calendar date, an absolute magnitude and its direction."""

    description: str
    complementary_description: str
    date: date
    magnitude: Decimal  # always >= 0
    is_debit: bool
    is_investment: bool
    sign_indicator: str | None
    entry_type_indicator: str | None
    source: RawLedgerEntry
    date_error: str | None = None


@dataclass(frozen=True)
class ClassifiedTransaction:
    """A normalized transaction with its signed amount, kind and category."""

    normalized: NormalizedTransaction
    kind: TransactionKind
    amount: Decimal  # negative = outflow
    category: str = DEFAULT_CATEGORY

    @property
    def date(self) -> date:
        return self.normalized.date


class TransactionMetadata(TypedDict, total=False):
    """Well-known metadata keys attached to a stored transaction.

    ``fingerprint`` and ``source`` are always present on stored records;
    every other key is optional and dropped when zero-valued.
    """

    fingerprint: str
    source: str
    encoded_date: str
    raw_amount: str
    sign_indicator: str
    entry_type_indicator: str
    transaction_code: int
    lot_number: int
    document_number: int
    external_id: str
    complementary_description: str
    counterparty_tax_id_masked: str
    counterparty_person_type: str
    bank_name: str
    batch_id: str
    is_debit: bool
    kind_corrected: bool


@dataclass
class CanonicalTransaction:
    """The persisted representation of one ledger movement."""

    id: str
    date: date
    name: str
    amount: Decimal
    kind: TransactionKind
    category: str
    metadata: TransactionMetadata
    wallet_id: str | None = None

    @property
    def fingerprint(self) -> str:
        return self.metadata["fingerprint"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "name": self.name,
            "amount": str(self.amount),
            "kind": self.kind.value,
            "category": self.category,
            "metadata": dict(self.metadata),
            "walletId": self.wallet_id,
        }


@dataclass(frozen=True)
class RecordError:
    record_ref: str
    reason: str


@dataclass
class SyncResult:
    """Per-batch outcome returned to the caller. Never persisted."""

    created: int = 0
    updated: int = 0
    errors: int = 0
    error_details: list[RecordError] = field(default_factory=list)
    already_imported: bool = False
    skipped_markers: int = 0
    reported_balance: Decimal | None = None

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.errors

    def add_error(self, record_ref: str, reason: str) -> None:
        self.errors += 1
        self.error_details.append(RecordError(record_ref=record_ref, reason=reason))

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "errorDetails": [
                {"recordRef": e.record_ref, "reason": e.reason} for e in self.error_details
            ],
            "alreadyImported": self.already_imported,
            "skippedMarkers": self.skipped_markers,
            "reportedBalance": (
                str(self.reported_balance) if self.reported_balance is not None else None
            ),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)
