"""CSV row to billing record conversion.

This module opens one export CSV, reads its header once, and converts
every following row into a typed ``BillingRecord`` through the column
type table. Row-level failures raise row-scoped errors so callers can
skip the row and keep scanning; stream failures raise fatal errors.
"""

from __future__ import annotations

import csv
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from billing.field_table import FieldKind, FieldSpec, coerce_value, resolve_field
from billing.naming import extract_invoice_period
from core.constants import INVALID_RECORD_IDS
from core.errors import BillingSourceError, ConvertError, CsvRowError, RowValidationError
from core.logging_config import get_logger
from core.types import BillingRecord, ExportDescriptor, ImportStats

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class RawRow:
    """One undecoded CSV row with its line number."""

    line_number: int
    values: tuple[str, ...]


class RecordConverter:
    """Stateful reader converting one export file into records.

    The converter owns the open file handle until ``close`` is called.
    """

    def __init__(self, report_name: str, stats: ImportStats) -> None:
        self._report_name = report_name
        self._stats = stats
        self._handle: IO[str] | None = None
        self._reader: Any = None
        self._descriptor: ExportDescriptor | None = None
        self._specs: tuple[FieldSpec | None, ...] = ()

    @property
    def descriptor(self) -> ExportDescriptor:
        """Return the descriptor of the opened export."""
        if self._descriptor is None:
            raise BillingSourceError("No export is open. Call open() before reading rows.")
        return self._descriptor

    def open(self, path: str | Path) -> ExportDescriptor:
        """Open an export CSV and read its header row.

        Args:
            path: Local CSV path. The file name must contain ``YYYY-MM``.

        Returns:
            Descriptor with the invoice period and header order.

        Raises:
            BillingSourceError: If the period, file, or header is unusable.
        """
        csv_path = Path(path)
        invoice_period = extract_invoice_period(csv_path)
        try:
            self._handle = csv_path.open("r", encoding="utf-8-sig", newline="")
        except OSError as error:
            raise BillingSourceError(
                f"Failed to open export {csv_path}: {error}. Check the unpacked file exists."
            ) from error
        self._reader = csv.reader(self._handle)
        header = self._read_header(csv_path)
        self._descriptor = ExportDescriptor(
            source_name=self._report_name,
            invoice_period=invoice_period,
            field_order=tuple(header),
        )
        self._specs = tuple(resolve_field(column) for column in header)
        unmapped = [column for column, spec in zip(header, self._specs) if spec is None]
        _LOGGER.info(
            "export_opened",
            path=str(csv_path),
            report_name=self._report_name,
            invoice_period=invoice_period.label(),
            column_count=len(header),
            unmapped_columns=unmapped,
        )
        return self._descriptor

    def read_row(self) -> RawRow | None:
        """Read the next non-empty data row.

        Returns:
            Raw row, or None at end of input.

        Raises:
            CsvRowError: If the row is not valid CSV.
            BillingSourceError: If the underlying stream cannot be read.
        """
        reader = self._require_reader()
        while True:
            try:
                values = next(reader)
            except StopIteration:
                return None
            except csv.Error as error:
                self._stats.read += 1
                raise CsvRowError(
                    f"Malformed CSV row at line {reader.line_num}: {error}",
                    reader.line_num,
                ) from error
            except (OSError, UnicodeDecodeError) as error:
                raise BillingSourceError(
                    f"Failed to read export {self.descriptor.source_name} "
                    f"near line {reader.line_num}: {error}"
                ) from error
            if values:
                self._stats.read += 1
                return RawRow(line_number=reader.line_num, values=tuple(values))

    def convert_row(self, row: RawRow) -> BillingRecord:
        """Convert one raw row into a record.

        Args:
            row: Row returned by ``read_row``.

        Returns:
            Typed billing record.

        Raises:
            CsvRowError: If the column count differs from the header.
            ConvertError: If a value cannot be coerced to its field type.
            RowValidationError: If the row has no usable ``RecordId``.
        """
        descriptor = self.descriptor
        if len(row.values) != len(descriptor.field_order):
            raise CsvRowError(
                f"Wrong number of fields at line {row.line_number}: "
                f"expected {len(descriptor.field_order)}, got {len(row.values)}",
                row.line_number,
            )
        attributes: dict[str, object] = {}
        tags: dict[str, str] = {}
        for spec, raw_value in zip(self._specs, row.values):
            if spec is None:
                continue
            try:
                value = coerce_value(spec, raw_value, descriptor.invoice_period)
            except ValueError as error:
                raise ConvertError(
                    f"Cannot convert column '{spec.column}' value {raw_value!r} "
                    f"at line {row.line_number}: {error}",
                    row.line_number,
                ) from error
            if spec.kind is FieldKind.TAG:
                tags[spec.attribute] = str(value)
            else:
                attributes[spec.attribute] = value
        record_id = str(attributes.get("record_id", ""))
        if record_id in INVALID_RECORD_IDS:
            raise RowValidationError(
                f"No RecordId found at line {row.line_number}: got {record_id!r}",
                row.line_number,
            )
        return BillingRecord(
            id=build_record_key(self._report_name, record_id),
            report_name=self._report_name,
            tags=tags,
            **attributes,  # type: ignore[arg-type]
        )

    def next_record(self) -> BillingRecord | None:
        """Read and convert the next row.

        Returns:
            Converted record, or None at end of input.

        Raises:
            CsvRowError: If the row is malformed.
            ConvertError: If the row cannot be converted or fails validation.
            BillingSourceError: If the underlying stream cannot be read.
        """
        row = self.read_row()
        if row is None:
            return None
        return self.convert_row(row)

    def close(self) -> None:
        """Release the export file handle."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._reader = None

    def __enter__(self) -> "RecordConverter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _read_header(self, csv_path: Path) -> list[str]:
        reader = self._require_reader()
        try:
            header = next(reader)
        except StopIteration:
            header = []
        except (csv.Error, OSError, UnicodeDecodeError) as error:
            self.close()
            raise BillingSourceError(
                f"Failed to read header of export {csv_path}: {error}"
            ) from error
        if not header:
            self.close()
            raise BillingSourceError(
                f"Export {csv_path} has no header row. Check the file is a billing export."
            )
        return header

    def _require_reader(self) -> Any:
        if self._reader is None:
            raise BillingSourceError("No export is open. Call open() before reading rows.")
        return self._reader


def build_record_key(report_name: str, record_id: str) -> str:
    """Build the stable store key of one line item.

    Args:
        report_name: Export name the line item belongs to.
        record_id: Source ``RecordId``.

    Returns:
        UUID string unique per export and line item.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{report_name}/{record_id}"))
