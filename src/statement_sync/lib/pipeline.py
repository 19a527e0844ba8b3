"""Pipeline — wires the engine stages together for one batch.

raw entries -> visibility filter -> normalizer -> classifier ->
fingerprint -> synchronizer. Preparation is pure and runs before any
store call; only the synchronizer touches the store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from .classifier import Classifier
from .errors import DuplicateBatch
from .fingerprint import entry_fingerprint
from .gatekeeper import BatchGatekeeper
from .logging_setup import get_logger
from .models import RawLedgerEntry, RecordError, SyncResult, TransactionMetadata
from .normalizer import normalize, pad_encoded_date, signed_amount
from .store import TransactionStore
from .synchronizer import PreparedRecord, SyncItem, Synchronizer
from .visibility import balance_priority, is_marker

_logger = get_logger("statement_sync.pipeline")

_NON_DIGIT = re.compile(r"\D")


def display_name(description: str, complement: str | None) -> str:
    """Description enriched with the complement when it adds information."""
    description = (description or "").strip()
    complement = (complement or "").strip()
    if not complement or complement in description:
        return description
    if len(complement) > 3:
        return f"{description} - {complement}" if description else complement
    return description


def mask_tax_id(tax_id: object) -> str:
    """Mask a CPF (11 digits or fewer) or CNPJ, keeping only the middle digits."""
    digits = _NON_DIGIT.sub("", str(tax_id or ""))
    if not digits or set(digits) == {"0"}:
        return ""
    if len(digits) <= 11:
        digits = digits.zfill(11)
        return f"***.***.{digits[-5:-2]}-{digits[-2:]}"
    digits = digits.zfill(14)
    return f"**.{digits[-12:-9]}.{digits[-9:-6]}/{digits[-6:-2]}-**"


def build_metadata(
    entry: RawLedgerEntry,
    fingerprint: str,
    source: str,
    is_debit: bool,
    batch_id: str | None = None,
) -> TransactionMetadata:
    metadata: TransactionMetadata = {
        "fingerprint": fingerprint,
        "source": source,
        "encoded_date": pad_encoded_date(entry.encoded_date),
        "raw_amount": str(entry.magnitude),
        "is_debit": is_debit,
    }
    optional = {
        "sign_indicator": entry.sign_indicator,
        "entry_type_indicator": entry.entry_type_indicator,
        "transaction_code": entry.transaction_code,
        "lot_number": entry.lot_number,
        "document_number": entry.document_number,
        "external_id": entry.external_id,
        "complementary_description": (entry.complementary_description or "").strip(),
        "counterparty_tax_id_masked": mask_tax_id(entry.counterparty_tax_id),
        "counterparty_person_type": entry.counterparty_person_type,
        "bank_name": entry.bank_name,
        "batch_id": batch_id,
    }
    for key, value in optional.items():
        if value not in (None, "", 0):
            metadata[key] = value  # type: ignore[literal-required]
    return metadata


@dataclass
class Prepared:
    """Output of the preparation pass, in input order."""

    items: list[SyncItem] = field(default_factory=list)
    skipped_markers: int = 0
    reported_balance: Decimal | None = None
    _balance_rank: int | None = field(default=None, repr=False)

    def note_balance(self, description: str, amount: Decimal) -> None:
        # Lower rank wins; among equals the latest marker wins
        rank = balance_priority(description)
        if self._balance_rank is None or rank <= self._balance_rank:
            self._balance_rank = rank
            self.reported_balance = amount


def prepare(
    entries: Iterable[RawLedgerEntry],
    classifier: Classifier,
    source: str,
    batch_id: str | None = None,
    today: date | None = None,
) -> Prepared:
    """Split markers out and turn every other entry into a PreparedRecord.

    Entries that cannot be normalized become RecordErrors in place, so the
    synchronizer still sees one item per non-marker entry.
    """
    tables = classifier.tables
    prepared = Prepared()

    for entry in entries:
        ref = entry.reference
        if is_marker(entry.description, entry.entry_type_indicator):
            prepared.skipped_markers += 1
            try:
                marker = normalize(
                    entry,
                    debit_keywords=tables.debit_keywords,
                    investment_keywords=tables.investment_keywords,
                    today=today,
                )
            except ValueError as e:
                _logger.debug("prepare:marker_unreadable ref=%s reason=%s", ref, e)
                continue
            balance = signed_amount(marker.magnitude, marker.is_debit)
            prepared.note_balance(entry.description, balance)
            continue

        try:
            normalized = normalize(
                entry,
                debit_keywords=tables.debit_keywords,
                investment_keywords=tables.investment_keywords,
                today=today,
            )
        except ValueError as e:
            prepared.items.append(RecordError(record_ref=ref, reason=str(e)))
            continue
        if normalized.date_error:
            prepared.items.append(RecordError(record_ref=ref, reason=normalized.date_error))
            continue

        classified = classifier.classify(normalized)
        fp = entry_fingerprint(entry)
        metadata = build_metadata(entry, fp, source, normalized.is_debit, batch_id)
        prepared.items.append(
            PreparedRecord(
                classified=classified,
                fingerprint=fp,
                name=display_name(normalized.description, normalized.complementary_description),
                metadata=metadata,
                ref=ref,
            )
        )

    if prepared.skipped_markers:
        _logger.info(
            "prepare:markers_skipped count=%d reported_balance=%s",
            prepared.skipped_markers,
            prepared.reported_balance,
        )
    return prepared


def _run(prepared: Prepared, store: TransactionStore, wallet_id: str | None) -> SyncResult:
    result = SyncResult(
        skipped_markers=prepared.skipped_markers,
        reported_balance=prepared.reported_balance,
    )
    return Synchronizer(store, wallet_id).sync(prepared.items, result)


def reconcile(
    entries: Iterable[RawLedgerEntry],
    store: TransactionStore,
    classifier: Classifier | None = None,
    *,
    source: str = "bank-extract",
    wallet_id: str | None = None,
    today: date | None = None,
) -> SyncResult:
    """Synchronize a streamed source. No batch gate; fingerprints only."""
    prepared = prepare(entries, classifier or Classifier(), source, today=today)
    return _run(prepared, store, wallet_id)


def import_batch(
    entries: Iterable[RawLedgerEntry],
    batch_id: str,
    store: TransactionStore,
    gatekeeper: BatchGatekeeper,
    classifier: Classifier | None = None,
    *,
    source: str = "ofx",
    wallet_id: str | None = None,
    today: date | None = None,
) -> SyncResult:
    """Import one exchange file.

    A batch seen before returns ``already_imported=True`` with zero counts.
    The batch is marked only after the synchronizer returns.
    """
    try:
        gatekeeper.ensure_new(batch_id)
    except DuplicateBatch:
        return SyncResult(already_imported=True)

    prepared = prepare(entries, classifier or Classifier(), source, batch_id=batch_id, today=today)
    result = _run(prepared, store, wallet_id)
    gatekeeper.mark_imported(batch_id, result)
    return result
