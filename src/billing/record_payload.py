"""Store item serialization for billing records and reports.

This module centralizes the mapping between typed records and the plain
item dictionaries written to the key-value store. Attribute names follow
the export header so stored rows read like the source CSV.
"""

from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any, Mapping

from billing.field_table import RECORD_FIELDS, FieldKind
from core.constants import (
    RECORD_KEY_FIELD,
    REPORT_ERRORS_FIELD,
    REPORT_FINGERPRINT_FIELD,
    REPORT_NAME_FIELD,
)
from core.types import BillingRecord, ReportRecord

REPORT_NAME_ATTRIBUTE = "ReportName"
TAGS_ATTRIBUTE = "Tags"


def record_to_item(record: BillingRecord) -> dict[str, object]:
    """Serialize a record into a store item.

    Floats become ``Decimal`` values because the store rejects binary floats.

    Args:
        record: Converted billing record.

    Returns:
        Item keyed by export column names.
    """
    values = asdict(record)
    item: dict[str, object] = {
        RECORD_KEY_FIELD: record.id,
        REPORT_NAME_ATTRIBUTE: record.report_name,
    }
    for spec in RECORD_FIELDS:
        value = values[spec.attribute]
        if spec.kind is FieldKind.FLOAT:
            value = Decimal(repr(value))
        item[spec.column] = value
    item[TAGS_ATTRIBUTE] = dict(record.tags)
    return item


def record_from_item(item: Mapping[str, Any]) -> BillingRecord:
    """Deserialize a store item into a record.

    Args:
        item: Item read back from the store.

    Returns:
        Parsed billing record.
    """
    values: dict[str, Any] = {}
    for spec in RECORD_FIELDS:
        if spec.column not in item:
            continue
        raw_value = item[spec.column]
        if spec.kind is FieldKind.FLOAT:
            values[spec.attribute] = float(raw_value)
        elif spec.kind in (FieldKind.SIGNED, FieldKind.UNSIGNED):
            values[spec.attribute] = int(raw_value)
        else:
            values[spec.attribute] = str(raw_value)
    tags = item.get(TAGS_ATTRIBUTE) or {}
    return BillingRecord(
        id=str(item[RECORD_KEY_FIELD]),
        report_name=str(item.get(REPORT_NAME_ATTRIBUTE, "")),
        tags={str(key): str(value) for key, value in dict(tags).items()},
        **values,
    )


def report_to_item(report: ReportRecord) -> dict[str, object]:
    """Serialize a report summary row."""
    return {
        REPORT_NAME_FIELD: report.source_name,
        REPORT_FINGERPRINT_FIELD: report.fingerprint,
        REPORT_ERRORS_FIELD: report.error_count,
    }


def report_key(source_name: str) -> dict[str, object]:
    """Build the reports-table key for one export."""
    return {REPORT_NAME_FIELD: source_name}
