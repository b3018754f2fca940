"""billsync exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Row-scoped and batch-scoped import errors carry an explicit kind tag
so the pipeline decides between skipping a row and aborting a run.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from core.types import ImportStats


class BillsyncError(Exception):
    """Base exception for all billsync failures."""


class BillsyncConfigError(BillsyncError):
    """Raised for invalid runtime configuration."""


class BillsyncDependencyError(BillsyncError):
    """Raised when an optional runtime dependency is missing."""


class BillsyncRunSpecError(BillsyncError):
    """Raised for invalid or unsupported run-spec configuration."""


class BillsyncStoreError(BillsyncError):
    """Raised when the object store or a table cannot be accessed."""


class BillsyncCheckError(BillsyncError):
    """Raised when source fingerprints cannot be compared."""


class BillsyncRetrieveError(BillsyncError):
    """Raised for export download and unpack failures."""


class BillingSourceError(BillsyncError):
    """Raised when the export CSV cannot be opened or read."""


class ErrorKind(Enum):
    """Kinds of errors raised while scanning and persisting rows."""

    CSV = "csv"
    CONVERT = "convert"
    STORAGE = "storage"


class BillingImportError(BillsyncError):
    """Base class for row- and batch-scoped import errors."""

    kind: ErrorKind

    def __init__(self, message: str, line_number: int | None = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class CsvRowError(BillingImportError):
    """Raised for a structurally malformed CSV row."""

    kind = ErrorKind.CSV


class ConvertError(BillingImportError):
    """Raised when a column value cannot be coerced to its field type."""

    kind = ErrorKind.CONVERT


class RowValidationError(ConvertError):
    """Raised when a converted row fails required-field validation."""


class BillingStorageError(BillingImportError):
    """Raised when the record store rejects a batch after all retries.

    Attributes:
        failed_record_ids: Source record ids that were not written.
        processed_count: Records confirmed written by the failing flush.
        stats: Partial import counters, attached by the pipeline manager.
    """

    kind = ErrorKind.STORAGE

    def __init__(
        self,
        message: str,
        failed_record_ids: Sequence[str] = (),
        processed_count: int = 0,
    ) -> None:
        super().__init__(message)
        self.failed_record_ids = tuple(failed_record_ids)
        self.processed_count = processed_count
        self.stats: ImportStats | None = None
