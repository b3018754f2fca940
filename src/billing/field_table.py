"""Column type table for billing export rows.

Every known export column maps to one record attribute and one field
kind. The kind selects the coercer applied to the raw CSV string.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from core.constants import CSV_DATE_FORMAT, RECORD_DATE_FORMAT, TAG_NAMESPACES
from core.types import InvoicePeriod

TAG_COLUMN_PATTERN = re.compile(rf"^({'|'.join(TAG_NAMESPACES)}):")


class FieldKind(Enum):
    """Value kinds a column can be coerced into."""

    STRING = "string"
    SIGNED = "signed"
    UNSIGNED = "unsigned"
    FLOAT = "float"
    DATE = "date"
    TAG = "tag"


@dataclass(frozen=True)
class FieldSpec:
    """Mapping of one export column onto a record attribute.

    Attributes:
        column: Header name in the export CSV.
        attribute: ``BillingRecord`` attribute name.
        kind: Coercion applied to raw values.
    """

    column: str
    attribute: str
    kind: FieldKind


RECORD_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("InvoiceID", "invoice_id", FieldKind.STRING),
    FieldSpec("PayerAccountId", "payer_account_id", FieldKind.UNSIGNED),
    FieldSpec("LinkedAccountId", "linked_account_id", FieldKind.UNSIGNED),
    FieldSpec("RecordType", "record_type", FieldKind.STRING),
    FieldSpec("RecordId", "record_id", FieldKind.STRING),
    FieldSpec("ProductName", "product_name", FieldKind.STRING),
    FieldSpec("RateId", "rate_id", FieldKind.SIGNED),
    FieldSpec("SubscriptionId", "subscription_id", FieldKind.SIGNED),
    FieldSpec("PricingPlanId", "pricing_plan_id", FieldKind.SIGNED),
    FieldSpec("UsageType", "usage_type", FieldKind.STRING),
    FieldSpec("Operation", "operation", FieldKind.STRING),
    FieldSpec("AvailabilityZone", "availability_zone", FieldKind.STRING),
    FieldSpec("ReservedInstance", "reserved_instance", FieldKind.STRING),
    FieldSpec("ItemDescription", "item_description", FieldKind.STRING),
    FieldSpec("UsageStartDate", "usage_start_date", FieldKind.DATE),
    FieldSpec("UsageEndDate", "usage_end_date", FieldKind.DATE),
    FieldSpec("UsageQuantity", "usage_quantity", FieldKind.FLOAT),
    FieldSpec("BlendedRate", "blended_rate", FieldKind.FLOAT),
    FieldSpec("BlendedCost", "blended_cost", FieldKind.FLOAT),
    FieldSpec("UnBlendedRate", "unblended_rate", FieldKind.FLOAT),
    FieldSpec("UnBlendedCost", "unblended_cost", FieldKind.FLOAT),
    FieldSpec("ResourceId", "resource_id", FieldKind.STRING),
)
FIELD_TABLE: dict[str, FieldSpec] = {spec.column: spec for spec in RECORD_FIELDS}


def resolve_field(column: str) -> FieldSpec | None:
    """Return the field entry for a header column, or None for unknown columns.

    Tag columns resolve to a ``TAG`` spec whose attribute is the
    normalized tag key.
    """
    spec = FIELD_TABLE.get(column)
    if spec is not None:
        return spec
    if TAG_COLUMN_PATTERN.match(column):
        return FieldSpec(column, normalize_tag_key(column), FieldKind.TAG)
    return None


def normalize_tag_key(column: str) -> str:
    """Rewrite ``namespace:key`` into ``namespace_key``."""
    return "_".join(column.split(":"))


def coerce_value(spec: FieldSpec, raw_value: str, period: InvoicePeriod) -> object:
    """Coerce a raw CSV value according to its field kind.

    Args:
        spec: Column spec.
        raw_value: Raw CSV cell.
        period: Invoice period used for empty dates.

    Returns:
        Typed value.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    return _COERCERS[spec.kind](raw_value, period)


def _parse_string(raw_value: str, period: InvoicePeriod) -> str:
    return raw_value


def _parse_signed(raw_value: str, period: InvoicePeriod) -> int:
    return int(raw_value)


def _parse_unsigned(raw_value: str, period: InvoicePeriod) -> int:
    value = int(raw_value)
    if value < 0:
        raise ValueError(f"expected unsigned integer, got {raw_value!r}")
    return value


def _parse_float(raw_value: str, period: InvoicePeriod) -> float:
    value = float(raw_value)
    if not math.isfinite(value):
        raise ValueError(f"expected finite number, got {raw_value!r}")
    return value


def _parse_date(raw_value: str, period: InvoicePeriod) -> str:
    if raw_value == "":
        return period.start_timestamp()
    return datetime.strptime(raw_value, CSV_DATE_FORMAT).strftime(RECORD_DATE_FORMAT)


_COERCERS: dict[FieldKind, Callable[[str, InvoicePeriod], object]] = {
    FieldKind.STRING: _parse_string,
    FieldKind.SIGNED: _parse_signed,
    FieldKind.UNSIGNED: _parse_unsigned,
    FieldKind.FLOAT: _parse_float,
    FieldKind.DATE: _parse_date,
    FieldKind.TAG: _parse_string,
}
