"""Error kinds raised or recorded by the engine.

Only structural failures propagate to callers. Per-record and per-batch
failures are caught by the synchronizer and counted.
"""

from __future__ import annotations

from typing import Optional


class DedupError(Exception):
    """Base class for engine errors."""


class NormalizationWarning(UserWarning):
    """Non-string or malformed text met during normalization (logged, never raised)."""


class QueryCapabilityError(DedupError):
    """The backing store rejected a query shape (e.g. a missing composite index).

    Attributes:
        remediation: Optional hint for fixing the store, such as an index-creation URL
    """

    def __init__(self, message: str, remediation: Optional[str] = None) -> None:
        super().__init__(message)
        self.remediation = remediation

    def __str__(self) -> str:
        msg = super().__str__()
        if self.remediation:
            return f"{msg} (remediation: {self.remediation})"
        return msg


class ComparatorUnavailable(DedupError):
    """The optional semantic comparator failed; lexical matching continues."""


class MappingError(DedupError):
    def __init__(self, record_id: str, cause: BaseException) -> None:
        super().__init__(f"Failed to map question {record_id}: {cause}")
        self.record_id = record_id
        self.cause = cause


class BatchCommitFailure(DedupError):
    def __init__(self, batch_index: int, cause: BaseException) -> None:
        super().__init__(f"Batch {batch_index} failed to commit: {cause}")
        self.batch_index = batch_index
        self.cause = cause
