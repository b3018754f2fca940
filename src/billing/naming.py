"""Export naming conventions.

This module builds export object names from an account id and a billing
month, and recovers the billing month from an export file name.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from core.constants import INVOICE_PERIOD_FORMAT, SOURCE_NAME_EXTENSION, SOURCE_NAME_INFIX
from core.errors import BillingSourceError
from core.types import InvoicePeriod

_PERIOD_IN_NAME = re.compile(r"\d{4}-\d{2}")


def build_source_name(account_id: str, period: str) -> str:
    """Build the export object name for one billing month.

    Args:
        account_id: Payer account id.
        period: Billing month as ``YYYY-MM``.

    Returns:
        Export file name such as
        ``1111-aws-billing-detailed-line-items-with-resources-and-tags-2017-07.csv.zip``.

    Raises:
        BillingSourceError: If the period is not a valid ``YYYY-MM`` month.
    """
    invoice_period = parse_invoice_period(period)
    return f"{account_id}{SOURCE_NAME_INFIX}{invoice_period.label()}{SOURCE_NAME_EXTENSION}"


def build_object_key(key_prefix: str, source_name: str) -> str:
    """Join an optional key prefix and an export name."""
    if not key_prefix:
        return source_name
    return f"{key_prefix.rstrip('/')}/{source_name}"


def parse_invoice_period(period: str) -> InvoicePeriod:
    """Parse a strict ``YYYY-MM`` label.

    Raises:
        BillingSourceError: If the label is not a valid month.
    """
    message = f"Invalid billing period '{period}': expected YYYY-MM, e.g. 2017-07."
    if not _PERIOD_IN_NAME.fullmatch(period):
        raise BillingSourceError(message)
    try:
        parsed = datetime.strptime(period, INVOICE_PERIOD_FORMAT)
    except ValueError as error:
        raise BillingSourceError(message) from error
    return InvoicePeriod(year=parsed.year, month=parsed.month)


def extract_invoice_period(file_path: str | Path) -> InvoicePeriod:
    """Find the billing month embedded in an export file name.

    Args:
        file_path: Export CSV path.

    Returns:
        Parsed billing month.

    Raises:
        BillingSourceError: If the name holds no valid ``YYYY-MM`` month.
    """
    file_name = Path(file_path).name
    match = _PERIOD_IN_NAME.search(file_name)
    if match is None:
        raise BillingSourceError(
            f"No billing period found in file name '{file_name}'. "
            "Export names must contain the month as YYYY-MM."
        )
    return parse_invoice_period(match.group(0))
