"""Batch gatekeeper — rejects exchange files that were already imported.

Runs once per file, before any record is touched. Streamed sources never
go through it and rely on per-record fingerprints instead.
"""

from __future__ import annotations

from typing import Protocol

from .errors import DuplicateBatch
from .logging_setup import get_logger
from .models import SyncResult

_logger = get_logger("statement_sync.gatekeeper")


class BatchRegistry(Protocol):
    def is_imported(self, batch_id: str, wallet_id: str | None = None) -> bool: ...

    def mark_imported(
        self,
        batch_id: str,
        source: str,
        result: SyncResult,
        wallet_id: str | None = None,
    ) -> None: ...


class InMemoryBatchRegistry:
    def __init__(self) -> None:
        self._seen: dict[tuple[str, str], SyncResult] = {}

    def is_imported(self, batch_id: str, wallet_id: str | None = None) -> bool:
        return (wallet_id or "", batch_id) in self._seen

    def mark_imported(
        self,
        batch_id: str,
        source: str,
        result: SyncResult,
        wallet_id: str | None = None,
    ) -> None:
        self._seen.setdefault((wallet_id or "", batch_id), result)


class BatchGatekeeper:
    """Guards a wallet against re-importing the same file."""

    def __init__(self, registry: BatchRegistry, wallet_id: str | None = None, source: str = "ofx"):
        self.registry = registry
        self.wallet_id = wallet_id
        self.source = source

    def ensure_new(self, batch_id: str) -> None:
        if self.registry.is_imported(batch_id, self.wallet_id):
            _logger.info("gatekeeper:duplicate_batch batch=%s wallet=%s", batch_id, self.wallet_id)
            raise DuplicateBatch(batch_id)

    def mark_imported(self, batch_id: str, result: SyncResult) -> None:
        """Record a completed batch, per-record errors included."""
        self.registry.mark_imported(batch_id, self.source, result, self.wallet_id)
        _logger.info(
            "gatekeeper:marked batch=%s wallet=%s created=%d updated=%d errors=%d",
            batch_id,
            self.wallet_id,
            result.created,
            result.updated,
            result.errors,
        )
