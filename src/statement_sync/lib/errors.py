"""Error taxonomy for statement ingestion.

Record-scoped errors (MalformedDate, StoreFailure) are caught by the
synchronizer and reported per record. DuplicateBatch is the only
batch-fatal error the engine raises.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every error raised by the ingestion engine."""


class MalformedDate(IngestError):
    """An encoded ledger date could not be parsed or is out of range."""

    def __init__(self, value: object, reason: str) -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Malformed date {value!r}: {reason}")


class InconsistentSign(IngestError):
    """Amount sign contradicts the inferred kind.

    Never raised to callers: the synchronizer corrects the kind and logs
    the correction under this name.
    """


class StoreFailure(IngestError):
    """A transaction store lookup, create or update failed."""


class DuplicateFingerprint(StoreFailure):
    """A create hit the store's uniqueness constraint on the fingerprint."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"Transaction with fingerprint {fingerprint!r} already exists")


class DuplicateBatch(IngestError):
    """The batch identifier was already fully imported."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id!r} was already imported")


class AdapterError(IngestError):
    """A source adapter could not fetch or parse its input."""
