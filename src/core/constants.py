"""Core constants used across billsync modules.

This module centralizes naming conventions, table names, and defaults.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

SOURCE_NAME_INFIX = "-aws-billing-detailed-line-items-with-resources-and-tags-"
SOURCE_NAME_EXTENSION = ".csv.zip"
ARCHIVE_EXTENSION = ".zip"
INVOICE_PERIOD_FORMAT = "%Y-%m"
CSV_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
RECORD_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
TAG_NAMESPACES = ("user", "aws")
INVALID_RECORD_IDS = ("", "0")

DEFAULT_DOWNLOAD_DIR = Path(tempfile.gettempdir()) / "billing-reports-download"
DEFAULT_UNPACK_DIR = Path(tempfile.gettempdir()) / "billing-reports-unzip"
DEFAULT_REPORTS_TABLE = "billing-reports"
DEFAULT_RECORDS_TABLE = "billing-records"
REPORT_NAME_FIELD = "name"
REPORT_FINGERPRINT_FIELD = "md5"
REPORT_ERRORS_FIELD = "errors"
RECORD_KEY_FIELD = "Id"

MAX_BATCH_SIZE = 25
DEFAULT_BATCH_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.1
DEFAULT_WORKERS = 1
WORKER_QUEUE_ROWS_PER_WORKER = 4 * MAX_BATCH_SIZE
DEFAULT_LOG_LEVEL = "info"
SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error")
DOWNLOAD_CHUNK_SIZE = 1024 * 1024
DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755
