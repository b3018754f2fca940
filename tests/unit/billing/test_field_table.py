"""Unit tests for the export column type table."""

from __future__ import annotations

import pytest

from billing.field_table import FIELD_TABLE, FieldKind, coerce_value, resolve_field
from core.types import InvoicePeriod

_PERIOD = InvoicePeriod(year=2017, month=7)


def test_resolve_field_maps_known_column_to_attribute() -> None:
    """Known export columns should resolve through the type table."""
    spec = resolve_field("PayerAccountId")

    assert spec is not None and (spec.attribute, spec.kind) == (
        "payer_account_id",
        FieldKind.UNSIGNED,
    )


def test_resolve_field_normalizes_tag_columns() -> None:
    """Tag columns should map to namespace_key attributes."""
    spec = resolve_field("user:cost-center")

    assert spec is not None and (spec.attribute, spec.kind) == ("user_cost-center", FieldKind.TAG)


def test_resolve_field_ignores_unknown_columns() -> None:
    """Columns outside the table and tag namespaces should resolve to None."""
    assert resolve_field("team:owner") is None


def test_coerce_value_parses_float_columns() -> None:
    """Float columns should coerce decimal strings."""
    value = coerce_value(FIELD_TABLE["UsageQuantity"], "0.01101368", _PERIOD)

    assert value == pytest.approx(0.01101368)


def test_coerce_value_renders_dates_as_iso_timestamps() -> None:
    """Date columns should re-render as ISO-8601 UTC timestamps."""
    value = coerce_value(FIELD_TABLE["UsageStartDate"], "2017-07-14 08:30:00", _PERIOD)

    assert value == "2017-07-14T08:30:00Z"


def test_coerce_value_defaults_empty_date_to_period_start() -> None:
    """Empty date cells should take the first instant of the invoice period."""
    value = coerce_value(FIELD_TABLE["UsageEndDate"], "", _PERIOD)

    assert value == "2017-07-01T00:00:00Z"


@pytest.mark.parametrize(
    ("column", "raw_value"),
    [
        ("PayerAccountId", "-5"),
        ("RateId", "abc"),
        ("SubscriptionId", ""),
        ("BlendedCost", "nan"),
        ("UsageQuantity", ""),
        ("UsageStartDate", "2017/07/01"),
    ],
)
def test_coerce_value_rejects_unparseable_values(column: str, raw_value: str) -> None:
    """Values that do not fit the column kind should raise ValueError."""
    with pytest.raises(ValueError):
        coerce_value(FIELD_TABLE[column], raw_value, _PERIOD)
