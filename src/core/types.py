"""Shared typed models.

This module defines the data models used by the checker, converter,
writer, and pipeline manager to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


@dataclass(frozen=True)
class InvoicePeriod:
    """Billing month an export belongs to.

    Attributes:
        year: Four-digit year.
        month: Month number in [1, 12].
    """

    year: int
    month: int

    def label(self) -> str:
        """Render the period as ``YYYY-MM``."""
        return f"{self.year:04d}-{self.month:02d}"

    def start_timestamp(self) -> str:
        """Render the first instant of the period as an RFC 3339 timestamp."""
        return f"{self.label()}-01T00:00:00Z"


@dataclass(frozen=True)
class ExportDescriptor:
    """Header-level description of one opened export file.

    Attributes:
        source_name: Report name records are attached to.
        invoice_period: Billing month parsed from the file name.
        field_order: Column names in header order.
    """

    source_name: str
    invoice_period: InvoicePeriod
    field_order: tuple[str, ...]


@dataclass(frozen=True)
class BillingRecord:
    """One converted billing line item.

    Attributes:
        id: Unique store key for the line item.
        report_name: Name of the export the row came from.
        record_id: Source line-item identifier; required for persistence.
        tags: Normalized ``namespace_key`` tag values.
    """

    id: str
    report_name: str
    invoice_id: str = ""
    payer_account_id: int = 0
    linked_account_id: int = 0
    record_type: str = ""
    record_id: str = ""
    product_name: str = ""
    rate_id: int = 0
    subscription_id: int = 0
    pricing_plan_id: int = 0
    usage_type: str = ""
    operation: str = ""
    availability_zone: str = ""
    reserved_instance: str = ""
    item_description: str = ""
    usage_start_date: str = ""
    usage_end_date: str = ""
    usage_quantity: float = 0.0
    blended_rate: float = 0.0
    blended_cost: float = 0.0
    unblended_rate: float = 0.0
    unblended_cost: float = 0.0
    resource_id: str = ""
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass
class ImportStats:
    """Running counters for one import.

    Attributes:
        read: Data rows read from the export.
        loaded: Records confirmed written to the store.
        warnings: Rows skipped because they were malformed or invalid.
        failed: Records the store did not accept after all retries.
    """

    read: int = 0
    loaded: int = 0
    warnings: int = 0
    failed: int = 0

    @property
    def error_count(self) -> int:
        """Return the error total persisted on the report row."""
        return self.failed + self.warnings

    def merge(self, other: "ImportStats") -> None:
        """Add another counter set into this one."""
        self.read += other.read
        self.loaded += other.loaded
        self.warnings += other.warnings
        self.failed += other.failed


@dataclass(frozen=True)
class FlushResult:
    """Outcome of one batch flush.

    Attributes:
        rejected_record_ids: Source record ids still unprocessed after retries.
        processed_count: Records confirmed written by this flush.
    """

    rejected_record_ids: tuple[str, ...] = ()
    processed_count: int = 0


@dataclass(frozen=True)
class ReportRecord:
    """Summary row written once per imported export."""

    source_name: str
    fingerprint: str
    error_count: int


@dataclass(frozen=True)
class ObjectSummary:
    """Listing entry returned by the object store.

    Attributes:
        key: Object key.
        etag: Content fingerprint, or None when the listing omits it.
        size: Object size in bytes.
    """

    key: str
    etag: str | None
    size: int = 0


class ImportState(Enum):
    """States of the import pipeline."""

    IDLE = "idle"
    CHECKING = "checking"
    FETCHING = "fetching"
    UNPACKING = "unpacking"
    SCANNING = "scanning"
    REPORTING = "reporting"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ImportOptions:
    """Options for importing one billing period from object storage.

    Attributes:
        period: Billing month as ``YYYY-MM``.
        bucket: Bucket holding the exports.
        account_id: Payer account id; resolved through STS when omitted.
        key_prefix: Optional key prefix the export lives under.
    """

    period: str
    bucket: str
    account_id: str | None = None
    key_prefix: str = ""


@dataclass(frozen=True)
class FileImportOptions:
    """Options for importing a local export file.

    Attributes:
        file_path: Local ``.csv`` or ``.csv.zip`` export.
        report_name: Report name to record; defaults to the file name.
    """

    file_path: str
    report_name: str | None = None


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one import run.

    Attributes:
        source_name: Export name the run targeted.
        state: Terminal pipeline state.
        imported: Whether rows were scanned and written.
        report_written: Whether a report row was persisted.
        fingerprint: Current fingerprint of the export.
        stats: Final counters.
    """

    source_name: str
    state: ImportState
    imported: bool
    report_written: bool
    fingerprint: str
    stats: ImportStats
