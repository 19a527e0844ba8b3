"""Visibility filter — spots running-balance pseudo-entries.

Extracts interleave balance snapshots ("SALDO ANTERIOR", "S A L D O",
"Saldo do dia") with real movements. They are normalized so their amount
can be reported, but never fingerprinted, stored or counted.
"""

from __future__ import annotations

import re

from .normalizer import fold_text

# Entry type flag for synthetic balance lines.
BALANCE_ENTRY_TYPE = "S"

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Whole words only: "saldo" and its run-together variants, "saldo" spelled
# as spaced single letters, and "balance" with an optional opening/closing.
_MARKER_RE = re.compile(
    r"\b(?:"
    r"saldo(?:s|anterior|atual|disponivel|inicial|final|dodia)?"
    r"|s\W+a\W+l\W+d\W+o"
    r"|(?:opening|closing)?balance"
    r")\b"
)


def _compact(text: str | None) -> str:
    return _NON_ALNUM.sub("", fold_text(text))


def is_marker(description: str | None, entry_type_indicator: str | None = None) -> bool:
    """True when the entry is a balance snapshot rather than a movement.

    "S A L D O", "Saldo-Anterior" and "Closing Balance" are markers; a name
    such as "MARCOS ALDO" or "BALANCEIRO" is not.
    """
    if (entry_type_indicator or "").strip().upper() == BALANCE_ENTRY_TYPE:
        return True
    return bool(_MARKER_RE.search(fold_text(description)))


# Preferred snapshot when an extract carries several balance lines.
_BALANCE_PRIORITY: tuple[str, ...] = ("saldoatual", "saldodisponivel", "saldo")


def balance_priority(description: str | None) -> int:
    """Rank a marker for reported-balance selection; lower is preferred."""
    compact = _compact(description)
    for rank, key in enumerate(_BALANCE_PRIORITY):
        if compact == key:
            return rank
    return len(_BALANCE_PRIORITY)
