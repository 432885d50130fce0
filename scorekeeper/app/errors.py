"""
Error types raised by the scoring engine.

Only caller-side invariant violations are raised. Malformed individual
findings never raise: the Normalizer recovers them locally with default
fields and a recorded warning.
"""

from __future__ import annotations

from typing import Iterable, Tuple


class DuplicateFindingIdError(ValueError):
    """
    Raised before scoring when one origin carries the same id twice.

    Silently de-duplicating would corrupt the precision/recall
    denominators, so the whole scoring request is rejected.
    """

    def __init__(self, origin: str, duplicate_ids: Iterable[str]) -> None:
        self.origin = origin
        self.duplicate_ids: Tuple[str, ...] = tuple(sorted(set(duplicate_ids)))
        super().__init__(
            f"Duplicate {origin} finding ids: {', '.join(self.duplicate_ids)}"
        )


class LedgerError(RuntimeError):
    """Invalid ledger operation (e.g. superseding an unknown audit run)."""


class LedgerConflictError(LedgerError):
    """
    Raised when an audit_run_id is appended to the ledger a second time.

    Fatal by contract: re-scoring must mint a new audit_run_id.
    """

    def __init__(self, audit_run_id: str) -> None:
        self.audit_run_id = audit_run_id
        super().__init__(
            f"Audit run '{audit_run_id}' is already recorded in the ledger"
        )


class TaxonomyError(ValueError):
    """The category taxonomy document is unreadable or inconsistent."""


class FindingsFileError(ValueError):
    """A findings input file cannot be read or has an unsupported shape."""
