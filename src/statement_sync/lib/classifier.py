"""Classifier — resolves transaction kind and category.

Category resolution is an ordered list of resolvers, first non-None answer
wins: transaction code lookup, then phrase match against the description,
then the ``OTHER`` default. Lookup tables are immutable and injected at
construction; ``CategoryTables.load`` reads them from rules/categories.yaml.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Protocol, Sequence

import yaml

from .models import DEFAULT_CATEGORY, ClassifiedTransaction, NormalizedTransaction, TransactionKind
from .normalizer import DEBIT_KEYWORDS, INVESTMENT_KEYWORDS, fold_text, signed_amount

DEFAULT_CODE_CATEGORIES: Mapping[int, str] = MappingProxyType({
    124: "BANK_TRANSFER",
    126: "SALARY",
    144: "PIX",
    156: "UTILITY",
    210: "BANK_TRANSFER",
    435: "BANK_FEE",
    624: "BANK_TRANSFER",
    830: "DEPOSIT",
    976: "BANK_TRANSFER",
    999: "OTHER",
})

# Order matters: earlier phrases win.
DEFAULT_PHRASE_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("PIX ENVIADO", "PIX"),
    ("PIX RECEBIDO", "PIX"),
    ("PIX - ENVIADO", "PIX"),
    ("PIX - RECEBIDO", "PIX"),
    ("TARIFA", "BANK_FEE"),
    ("TED-CRÉDITO EM CONTA", "BANK_TRANSFER"),
    ("TED RECEBIDO", "BANK_TRANSFER"),
    ("TED ENVIADO", "BANK_TRANSFER"),
    ("DEP DINHEIRO", "DEPOSIT"),
    ("DEPÓSITO EM DINHEIRO", "DEPOSIT"),
    ("ALUGUEL", "HOUSING"),
    ("CONDOMINIO", "HOUSING"),
    ("UBER", "TRANSPORTATION"),
    ("TAXI", "TRANSPORTATION"),
    ("COMBUSTIVEL", "TRANSPORTATION"),
    ("GASOLINA", "TRANSPORTATION"),
    ("RESTAURANTE", "FOOD"),
    ("SUPERMERCADO", "FOOD"),
    ("IFOOD", "FOOD"),
    ("NETFLIX", "ENTERTAINMENT"),
    ("SPOTIFY", "ENTERTAINMENT"),
    ("CINEMA", "ENTERTAINMENT"),
    ("FARMACIA", "HEALTH"),
    ("HOSPITAL", "HEALTH"),
    ("INTERNET", "UTILITY"),
    ("TELEFONE", "UTILITY"),
    ("SALARIO", "SALARY"),
    ("FACULDADE", "EDUCATION"),
    ("ESCOLA", "EDUCATION"),
)


@dataclass(frozen=True)
class CategoryTables:
    """Static lookup data for classification."""

    codes: Mapping[int, str] = field(default_factory=lambda: DEFAULT_CODE_CATEGORIES)
    phrases: tuple[tuple[str, str], ...] = DEFAULT_PHRASE_CATEGORIES
    investment_keywords: tuple[str, ...] = INVESTMENT_KEYWORDS
    debit_keywords: tuple[str, ...] = DEBIT_KEYWORDS

    @classmethod
    def load(cls, path: Path) -> "CategoryTables":
        """Load tables from YAML. Missing file or sections keep the defaults."""
        if not path.exists():
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        codes = DEFAULT_CODE_CATEGORIES
        if data.get("codes") is not None:
            codes = MappingProxyType({int(k): str(v) for k, v in data["codes"].items()})

        phrases = DEFAULT_PHRASE_CATEGORIES
        if data.get("phrases") is not None:
            phrases = tuple((str(r["phrase"]), str(r["category"])) for r in data["phrases"])

        return cls(
            codes=codes,
            phrases=phrases,
            investment_keywords=_keywords(data.get("investment_keywords"), INVESTMENT_KEYWORDS),
            debit_keywords=_keywords(data.get("debit_keywords"), DEBIT_KEYWORDS),
        )

    def save(self, path: Path) -> None:
        data = {
            "codes": {code: category for code, category in sorted(self.codes.items())},
            "phrases": [{"phrase": p, "category": c} for p, c in self.phrases],
            "investment_keywords": list(self.investment_keywords),
            "debit_keywords": list(self.debit_keywords),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def _keywords(raw: object, default: tuple[str, ...]) -> tuple[str, ...]:
    if raw is None:
        return default
    return tuple(fold_text(str(k)) for k in raw)  # type: ignore[union-attr]


class CategoryResolver(Protocol):
    def resolve(self, code: int | None, description: str, complement: str) -> str | None: ...


@dataclass(frozen=True)
class CodeResolver:
    codes: Mapping[int, str]

    def resolve(self, code: int | None, description: str, complement: str) -> str | None:
        if not code:
            return None
        return self.codes.get(code)


@dataclass(frozen=True)
class PhraseResolver:
    """Case- and accent-insensitive substring match, description first."""

    phrases: tuple[tuple[str, str], ...]
    _folded: tuple[tuple[str, str], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_folded", tuple((fold_text(p), c) for p, c in self.phrases if p.strip())
        )

    def resolve(self, code: int | None, description: str, complement: str) -> str | None:
        for text in (description, complement):
            folded = fold_text(text)
            if not folded:
                continue
            for phrase, category in self._folded:
                if phrase in folded:
                    return category
        return None


class Classifier:
    """Maps a normalized transaction to kind and category. Pure."""

    def __init__(
        self,
        tables: CategoryTables | None = None,
        resolvers: Sequence[CategoryResolver] | None = None,
    ) -> None:
        self.tables = tables or CategoryTables()
        if resolvers is None:
            resolvers = (CodeResolver(self.tables.codes), PhraseResolver(self.tables.phrases))
        self.resolvers: tuple[CategoryResolver, ...] = tuple(resolvers)

    def category(self, code: int | None, description: str, complement: str = "") -> str:
        for resolver in self.resolvers:
            category = resolver.resolve(code, description, complement)
            if category:
                return category
        return DEFAULT_CATEGORY

    def kind(self, description: str, is_debit: bool) -> TransactionKind:
        """Investment keywords win over the debit/credit split."""
        folded = fold_text(description)
        if any(kw in folded for kw in self.tables.investment_keywords):
            return TransactionKind.INVESTMENT
        return TransactionKind.EXPENSE if is_debit else TransactionKind.DEPOSIT

    def classify(self, txn: NormalizedTransaction) -> ClassifiedTransaction:
        return ClassifiedTransaction(
            normalized=txn,
            kind=self.kind(txn.description, txn.is_debit),
            amount=signed_amount(txn.magnitude, txn.is_debit),
            category=self.category(
                txn.source.transaction_code, txn.description, txn.complementary_description
            ),
        )
