"""OFX exchange-file reader — turns an OFX statement into raw ledger entries.

Handles both SGML-style OFX 1.x (unclosed leaf tags) and XML OFX 2.x.
Brazilian bank exports often arrive with broken accents, so the content is
repaired with a few known substitutions and reduced to ASCII before the
transaction blocks are read.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path

from .errors import AdapterError
from .logging_setup import get_logger
from .models import RawLedgerEntry
from .normalizer import format_encoded_date, to_decimal

_logger = get_logger("statement_sync.ofx_file")

MAX_FILE_BYTES = 10 * 1024 * 1024
UNKNOWN_BANK = "UNKNOWN"

BANK_MARKERS: dict[str, tuple[str, ...]] = {
    "C6 BANK": ("C6 BANK", "c6bank", "C6BANK"),
    "SAFRA": ("SAFRA", "BANCO SAFRA", "BANCOSAFRA"),
    "BANCO DO BRASIL": ("BANCO DO BRASIL",),
}

# Banks whose exports put the payee in NAME and details in MEMO
_NAME_FIRST_BANKS = frozenset({"C6 BANK", "SAFRA"})

_COMMON_REPAIRS: tuple[tuple[str, str], ...] = (
    (r"Cobran.a", "Cobranca"),
    (r"I\.O\.F\.", "IOF"),
    (r"Servi.o", "Servico"),
    (r"cr.dito", "credito"),
    (r"cart.o", "cartao"),
    (r"Dep.sito", "Deposito"),
    (r"Dep .+? dinheiro", "Deposito em dinheiro"),
    (r"Tarifa [^<\r\n]+? Servi[^\s<]+", "Tarifa de Servicos"),
)

_BANK_REPAIRS: dict[str, tuple[tuple[str, str], ...]] = {
    "C6 BANK": (
        (r"PIX - ENVIADO", "PIX ENVIADO"),
        (r"PIX - RECEBIDO", "PIX RECEBIDO"),
        (r"TRANSF\. ENTRE CONTAS", "TRANSFERENCIA ENTRE CONTAS"),
        (r"PAGTO\.", "PAGAMENTO"),
        (r"\?\?", ""),
    ),
    "SAFRA": (
        (r"SAQ\.", "SAQUE"),
        (r"PGTO\.", "PAGAMENTO"),
        (r"DEP\.", "DEPOSITO"),
        (r"--", "-"),
        (r"[ \t]{2,}", " "),
    ),
}

_STMTTRN = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
_NON_ASCII = re.compile(r"[^\x00-\x7F]")


def _tag(content: str, name: str) -> str:
    """Value of the first ``<NAME>`` tag, closed or not."""
    m = re.search(rf"<{name}>([^<\r\n]*)", content, re.IGNORECASE)
    return m.group(1).strip() if m else ""


def decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def identify_bank(content: str) -> str:
    """Known bank markers first, then the FI, BANKID and ORG tags."""
    for bank, markers in BANK_MARKERS.items():
        if any(marker in content for marker in markers):
            return bank
    for tag in ("FI", "BANKID", "ORG"):
        value = _tag(content, tag)
        if value:
            return value
    _logger.warning("ofx:bank_unidentified")
    return UNKNOWN_BANK


def repair_text(content: str, bank: str) -> str:
    for pattern, replacement in _COMMON_REPAIRS + _BANK_REPAIRS.get(bank, ()):
        content = re.sub(pattern, replacement, content)
    return _NON_ASCII.sub("", content)


def batch_identifier(content: str) -> str:
    """Identify an export file for duplicate-import detection.

    BANKID, ACCTID and the server (or as-of) timestamp joined with ``_``;
    a SHA-256 of the content when the file carries none of them.
    """
    parts = [
        _tag(content, "BANKID"),
        _tag(content, "ACCTID"),
        _tag(content, "DTSERVER") or _tag(content, "DTASOF"),
    ]
    identifier = "_".join(p for p in parts if p)
    if identifier:
        return identifier
    return "sha256:" + hashlib.sha256(content.encode("utf-8")).hexdigest()


def parse_ofx_date(value: str) -> date:
    """YYYYMMDD[HHMMSS[.XXX]][[-3:BRT]] to a date."""
    s = value.split("[")[0].strip()
    if len(s) < 8 or not s[:8].isdigit():
        raise ValueError(f"Invalid OFX date {value!r}")
    return date(int(s[0:4]), int(s[4:6]), int(s[6:8]))


def _parse_amount(value: str) -> Decimal | str:
    """Parse TRNAMT; with both separators present the last one is the decimal point.

    An unparseable value is returned as-is so the record fails on its own.
    """
    s = value.strip().replace(" ", "")
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".")
    try:
        return to_decimal(s)
    except ValueError:
        return value


def _as_int(value: str) -> int | None:
    digits = value.strip()
    if digits.isdigit() and int(digits) != 0:
        return int(digits)
    return None


def _description(memo: str, name: str, bank: str, ref: str) -> str:
    if bank in _NAME_FIRST_BANKS:
        if name and not memo:
            return name
        if memo and name and memo != name:
            return f"{name} - {memo}"
    return memo or name or f"Transaction {ref}"


@dataclass
class OfxStatement:
    """One parsed OFX file."""

    bank: str
    account_id: str
    batch_id: str
    entries: list[RawLedgerEntry] = field(default_factory=list)
    start: str = ""
    end: str = ""


def entry_from_block(block: str, bank: str) -> RawLedgerEntry | None:
    """Map one STMTTRN block. Blocks without FITID, date or amount are skipped."""
    fitid = _tag(block, "FITID")
    posted = _tag(block, "DTPOSTED")
    amount_text = _tag(block, "TRNAMT")
    if not (fitid and posted and amount_text):
        return None

    memo = _tag(block, "MEMO")
    name = _tag(block, "NAME")
    checknum = _tag(block, "CHECKNUM")
    refnum = _tag(block, "REFNUM")

    try:
        encoded_date = format_encoded_date(parse_ofx_date(posted))
    except ValueError:
        # Non-digit encoding fails later as a per-record MalformedDate
        encoded_date = f"DTPOSTED={posted}"

    amount = _parse_amount(amount_text)
    if isinstance(amount, Decimal):
        sign = "D" if amount < 0 else "C"
        magnitude: Decimal | str = abs(amount)
    else:
        sign = None
        magnitude = amount

    return RawLedgerEntry(
        description=re.sub(r"\s+", " ", _description(memo, name, bank, refnum or checknum or fitid)),
        encoded_date=encoded_date,
        magnitude=magnitude,  # type: ignore[arg-type]
        sign_indicator=sign,
        entry_type_indicator=_tag(block, "TRNTYPE") or None,
        document_number=_as_int(checknum) or _as_int(refnum),
        external_id=fitid,
        bank_name=bank,
    )


def parse_ofx(content: str) -> OfxStatement:
    """Parse OFX text into a statement of raw entries, in file order."""
    if "<OFX>" not in content.upper():
        raise AdapterError("Not an OFX file: missing <OFX> root")

    bank = identify_bank(content)
    statement = OfxStatement(
        bank=bank,
        account_id=_tag(content, "ACCTID"),
        batch_id=batch_identifier(content),
        start=_tag(content, "DTSTART"),
        end=_tag(content, "DTEND"),
    )

    fixed = repair_text(content, bank)
    skipped = 0
    for block in _STMTTRN.findall(fixed):
        entry = entry_from_block(block, bank)
        if entry is None:
            skipped += 1
            continue
        statement.entries.append(entry)

    _logger.info(
        "ofx:parsed bank=%s account=%s entries=%d skipped=%d period=%s..%s",
        bank,
        statement.account_id or "?",
        len(statement.entries),
        skipped,
        statement.start or "?",
        statement.end or "?",
    )
    return statement


def read_ofx_file(path: Path) -> OfxStatement:
    """Read and parse an .ofx file, enforcing extension and size limits."""
    if path.suffix.lower() != ".ofx":
        raise AdapterError(f"{path.name}: expected an .ofx file")
    size = path.stat().st_size
    if size > MAX_FILE_BYTES:
        raise AdapterError(f"{path.name}: file is {size} bytes, limit is {MAX_FILE_BYTES}")
    return parse_ofx(decode(path.read_bytes()))
