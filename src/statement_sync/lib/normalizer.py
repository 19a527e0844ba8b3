"""Date/amount normalizer — turns raw ledger entries into dated magnitudes.

Bank extracts encode dates as DDMMYYYY digits with no explicit epoch, and
drop the leading zero of single-digit days (``5032024`` is 5 March 2024).
Amounts stay absolute here. The debit/credit decision made here is the single
source of truth the classifier uses for both the amount sign and the kind.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from decimal import Decimal, InvalidOperation

from .errors import MalformedDate
from .logging_setup import get_logger
from .models import NormalizedTransaction, RawLedgerEntry

_logger = get_logger("statement_sync.normalizer")

MIN_YEAR = 2020
MAX_YEAR = 2050

DEBIT_KEYWORDS: tuple[str, ...] = ("debito",)
INVESTMENT_KEYWORDS: tuple[str, ...] = ("invest", "aplic")

# Entry type indicators some extract versions use instead of a sign.
_DEBIT_ENTRY_TYPES = frozenset({"D", "1"})


def fold_text(text: str | None) -> str:
    """Lowercase, strip accents and collapse whitespace for keyword matching."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    s = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return re.sub(r"\s+", " ", s.strip().lower())


def pad_encoded_date(value: str | int) -> str:
    s = str(value).strip()
    if len(s) == 7:
        s = "0" + s
    return s


def parse_encoded_date(value: str | int) -> date:
    """Parse a DDMMYYYY encoded date.

    Raises:
        MalformedDate: when the value is not 7/8 digits, a component is out
            of range (day 1-31, month 1-12, year 2020-2050) or the triple is
            not a real calendar date.
    """
    s = pad_encoded_date(value)
    if len(s) != 8 or not s.isdigit():
        raise MalformedDate(value, "expected 7 or 8 digits")

    day, month, year = int(s[:2]), int(s[2:4]), int(s[4:])
    if not 1 <= day <= 31:
        raise MalformedDate(value, f"day {day} out of range")
    if not 1 <= month <= 12:
        raise MalformedDate(value, f"month {month} out of range")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise MalformedDate(value, f"year {year} outside {MIN_YEAR}-{MAX_YEAR}")
    try:
        return date(year, month, day)
    except ValueError as e:
        raise MalformedDate(value, str(e)) from e


def format_encoded_date(d: date) -> str:
    """Inverse of parse_encoded_date, always 8 digits."""
    return d.strftime("%d%m%Y")


def contains_keyword(text: str | None, keywords: tuple[str, ...]) -> bool:
    folded = fold_text(text)
    return any(kw in folded for kw in keywords)


def resolve_is_debit(
    sign_indicator: str | None,
    entry_type_indicator: str | None,
    description: str,
    debit_keywords: tuple[str, ...] = DEBIT_KEYWORDS,
) -> bool:
    """Decide whether an entry moves money out of the account.

    The description keyword is only a fallback for entries that carry no
    explicit sign indicator.
    """
    sign = (sign_indicator or "").strip().upper()
    if sign == "D":
        return True
    if (entry_type_indicator or "").strip().upper() in _DEBIT_ENTRY_TYPES:
        return True
    if sign:
        return False
    return contains_keyword(description, debit_keywords)


def is_investment(
    description: str, investment_keywords: tuple[str, ...] = INVESTMENT_KEYWORDS
) -> bool:
    return contains_keyword(description, investment_keywords)


def signed_amount(magnitude: Decimal, is_debit: bool) -> Decimal:
    return -magnitude if is_debit else magnitude


def to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount {value!r}")
    return result


def normalize(
    entry: RawLedgerEntry,
    *,
    debit_keywords: tuple[str, ...] = DEBIT_KEYWORDS,
    investment_keywords: tuple[str, ...] = INVESTMENT_KEYWORDS,
    today: date | None = None,
) -> NormalizedTransaction:
    """Normalize one raw entry.

    A malformed date does not raise: today's date is substituted and
    ``date_error`` is set so the caller can report and skip the record.
    """
    date_error = None
    try:
        txn_date = parse_encoded_date(entry.encoded_date)
    except MalformedDate as e:
        _logger.warning("normalize:malformed_date ref=%s reason=%s", entry.reference, e.reason)
        txn_date = today or date.today()
        date_error = str(e)

    magnitude = abs(to_decimal(entry.magnitude))
    is_debit = resolve_is_debit(
        entry.sign_indicator, entry.entry_type_indicator, entry.description, debit_keywords
    )

    return NormalizedTransaction(
        description=(entry.description or "").strip(),
        complementary_description=(entry.complementary_description or "").strip(),
        date=txn_date,
        magnitude=magnitude,
        is_debit=is_debit,
        is_investment=is_investment(entry.description, investment_keywords),
        sign_indicator=entry.sign_indicator,
        entry_type_indicator=entry.entry_type_indicator,
        source=entry,
        date_error=date_error,
    )
