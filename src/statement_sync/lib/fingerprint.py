"""Transaction fingerprinting for deduplication.

A fingerprint is a readable signature built only from fields that arrive
unchanged from the source record (date, amount, sign, lot/document numbers,
source ids). Derived values such as kind or category never take part, so
reclassifying a record cannot make it look new.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from .models import RawLedgerEntry
from .normalizer import pad_encoded_date, resolve_is_debit, to_decimal

SEPARATOR = "|"


def _render(value: object) -> str:
    if isinstance(value, Decimal):
        # 1500, 1500.0 and 1500.00 are the same amount
        return format(value.normalize(), "f")
    return str(value).strip()


def _is_zero(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (int, float, Decimal)):
        return value == 0
    return False


def fingerprint(fields: Mapping[str, object]) -> str:
    """Generate a stable fingerprint from stable source fields.

    Zero-valued fields (0, empty string, None) are dropped, the remaining
    ``key:value`` pairs are sorted by key and joined with ``|``. The result
    does not depend on field order or on the presence of empty fields.

    Args:
        fields: Mapping of stable field name to raw value.

    Returns:
        Signature string such as ``document_number:42|encoded_date:05032024``.
    """
    pairs = sorted(
        (str(key), _render(value)) for key, value in fields.items() if not _is_zero(value)
    )
    return SEPARATOR.join(f"{key}:{value}" for key, value in pairs)


def stable_fields(entry: RawLedgerEntry) -> dict[str, object]:
    """Extract the fingerprint inputs from a raw entry.

    Entries that carry no sign indicator get the resolved direction instead,
    so a debit and a credit of the same amount never share a fingerprint.
    """
    sign = (entry.sign_indicator or "").strip().upper()
    if not sign:
        is_debit = resolve_is_debit(None, entry.entry_type_indicator, entry.description)
        sign = "D" if is_debit else "C"
    return {
        "encoded_date": pad_encoded_date(entry.encoded_date),
        "magnitude": abs(to_decimal(entry.magnitude)),
        "sign_indicator": sign,
        "lot_number": entry.lot_number,
        "document_number": entry.document_number,
        "external_id": entry.external_id,
    }


def entry_fingerprint(entry: RawLedgerEntry) -> str:
    return fingerprint(stable_fields(entry))
