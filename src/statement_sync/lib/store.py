"""Transaction store contract and an in-memory implementation.

The engine only needs three operations from a store. Uniqueness of a
fingerprint within a wallet is the store's job: a create that would
duplicate one must raise DuplicateFingerprint.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from decimal import Decimal
from typing import Protocol, TypedDict

from .errors import DuplicateFingerprint, StoreFailure
from .models import CanonicalTransaction, TransactionKind, TransactionMetadata


class TransactionPatch(TypedDict, total=False):
    amount: Decimal
    kind: TransactionKind
    category: str
    metadata: TransactionMetadata


class TransactionStore(Protocol):
    def find_by_fingerprint(self, fingerprint: str) -> CanonicalTransaction | None: ...

    def create(self, record: CanonicalTransaction) -> CanonicalTransaction: ...

    def update(self, id: str, patch: TransactionPatch) -> CanonicalTransaction: ...


class InMemoryTransactionStore:
    """Dict-backed store scoped to one wallet. Not thread-safe."""

    def __init__(self, wallet_id: str | None = None) -> None:
        self.wallet_id = wallet_id
        self._by_id: dict[str, CanonicalTransaction] = {}
        self._by_fingerprint: dict[str, str] = {}

    def find_by_fingerprint(self, fingerprint: str) -> CanonicalTransaction | None:
        txn_id = self._by_fingerprint.get(fingerprint)
        if txn_id is None:
            return None
        return copy.deepcopy(self._by_id[txn_id])

    def create(self, record: CanonicalTransaction) -> CanonicalTransaction:
        fp = record.fingerprint
        if fp in self._by_fingerprint:
            raise DuplicateFingerprint(fp)
        stored = copy.deepcopy(record)
        if stored.wallet_id is None:
            stored.wallet_id = self.wallet_id
        self._by_id[stored.id] = stored
        self._by_fingerprint[fp] = stored.id
        return copy.deepcopy(stored)

    def update(self, id: str, patch: TransactionPatch) -> CanonicalTransaction:
        current = self._by_id.get(id)
        if current is None:
            raise StoreFailure(f"Transaction {id!r} not found")
        updated = replace(current, **copy.deepcopy(dict(patch)))
        self._by_id[id] = updated
        return copy.deepcopy(updated)

    def list_transactions(self) -> list[CanonicalTransaction]:
        return [copy.deepcopy(t) for t in sorted(self._by_id.values(), key=lambda t: t.date)]

    def count(self) -> int:
        return len(self._by_id)
