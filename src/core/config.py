"""Runtime configuration model for billsync.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BATCH_RETRY_ATTEMPTS,
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_LOG_LEVEL,
    DEFAULT_RECORDS_TABLE,
    DEFAULT_REPORTS_TABLE,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_UNPACK_DIR,
    DEFAULT_WORKERS,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import BillsyncConfigError


@dataclass(frozen=True)
class BillsyncConfig:
    """Validated runtime configuration.

    Attributes:
        download_dir: Staging path for downloaded export archives.
        unpack_dir: Staging directory for extracted CSV files.
        s3_region: Optional AWS region for the export bucket.
        s3_profile: Optional AWS profile for the export bucket.
        dynamodb_region: Optional AWS region for the billing tables.
        dynamodb_profile: Optional AWS profile for the billing tables.
        dynamodb_endpoint_url: Optional endpoint override, e.g. DynamoDB Local.
        reports_table: Table holding one fingerprint row per export.
        records_table: Table holding one row per billing line item.
        batch_retry_attempts: Total batch-write attempts per flush.
        retry_backoff_seconds: Base delay before retrying unprocessed items.
        workers: Number of converter/writer workers used while scanning.
        log_level: Minimum structured log level.
    """

    download_dir: Path
    unpack_dir: Path
    s3_region: str | None = None
    s3_profile: str | None = None
    dynamodb_region: str | None = None
    dynamodb_profile: str | None = None
    dynamodb_endpoint_url: str | None = None
    reports_table: str = DEFAULT_REPORTS_TABLE
    records_table: str = DEFAULT_RECORDS_TABLE
    batch_retry_attempts: int = DEFAULT_BATCH_RETRY_ATTEMPTS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    workers: int = DEFAULT_WORKERS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "BillsyncConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            BillsyncConfigError: If environment values are invalid.
        """
        download_dir = os.getenv("BILLSYNC_DOWNLOAD_DIR", str(DEFAULT_DOWNLOAD_DIR))
        unpack_dir = os.getenv("BILLSYNC_UNPACK_DIR", str(DEFAULT_UNPACK_DIR))
        return cls(
            download_dir=Path(download_dir).expanduser(),
            unpack_dir=Path(unpack_dir).expanduser(),
            s3_region=os.getenv("BILLSYNC_S3_REGION"),
            s3_profile=os.getenv("BILLSYNC_S3_PROFILE"),
            dynamodb_region=os.getenv("BILLSYNC_DYNAMODB_REGION"),
            dynamodb_profile=os.getenv("BILLSYNC_DYNAMODB_PROFILE"),
            dynamodb_endpoint_url=os.getenv("BILLSYNC_DYNAMODB_ENDPOINT_URL"),
            reports_table=os.getenv("BILLSYNC_REPORTS_TABLE", DEFAULT_REPORTS_TABLE),
            records_table=os.getenv("BILLSYNC_RECORDS_TABLE", DEFAULT_RECORDS_TABLE),
            batch_retry_attempts=_parse_positive_int(
                "BILLSYNC_BATCH_RETRY_ATTEMPTS",
                os.getenv("BILLSYNC_BATCH_RETRY_ATTEMPTS", str(DEFAULT_BATCH_RETRY_ATTEMPTS)),
            ),
            retry_backoff_seconds=_parse_backoff(
                os.getenv("BILLSYNC_RETRY_BACKOFF_SECONDS", str(DEFAULT_RETRY_BACKOFF_SECONDS))
            ),
            workers=_parse_positive_int(
                "BILLSYNC_WORKERS", os.getenv("BILLSYNC_WORKERS", str(DEFAULT_WORKERS))
            ),
            log_level=_parse_log_level(os.getenv("BILLSYNC_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def _parse_positive_int(variable_name: str, raw_value: str) -> int:
    """Parse an integer environment value that must be at least one.

    Args:
        variable_name: Environment variable name for error messages.
        raw_value: Raw string from environment.

    Returns:
        Parsed integer.

    Raises:
        BillsyncConfigError: If value is not an integer >= 1.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise BillsyncConfigError(
            f"Invalid {variable_name} value: expected integer, got '{raw_value}'. "
            f"Set {variable_name} to a positive number."
        ) from error
    if value < 1:
        raise BillsyncConfigError(
            f"Invalid {variable_name} value: expected at least 1, got {value}. "
            f"Set {variable_name} to a positive number."
        )
    return value


def _parse_backoff(raw_value: str) -> float:
    """Parse the retry backoff environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Non-negative delay in seconds.

    Raises:
        BillsyncConfigError: If value is not a non-negative number.
    """
    try:
        value = float(raw_value)
    except ValueError as error:
        raise BillsyncConfigError(
            "Invalid BILLSYNC_RETRY_BACKOFF_SECONDS value: "
            f"expected number, got '{raw_value}'. "
            "Set BILLSYNC_RETRY_BACKOFF_SECONDS to seconds, e.g. 0.1."
        ) from error
    if value < 0:
        raise BillsyncConfigError(
            f"Invalid BILLSYNC_RETRY_BACKOFF_SECONDS value: {value} is negative. "
            "Use 0 to disable backoff."
        )
    return value


def _parse_log_level(raw_value: str) -> str:
    """Validate the configured log level name."""
    level = raw_value.strip().lower()
    if level not in SUPPORTED_LOG_LEVELS:
        raise BillsyncConfigError(
            f"Invalid BILLSYNC_LOG_LEVEL value '{raw_value}'. "
            f"Supported levels: {', '.join(SUPPORTED_LOG_LEVELS)}."
        )
    return level
