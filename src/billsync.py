"""Public SDK surface for billsync.

This module provides a stable import path for SDK users.
It re-exports the primary client, the manager, and typed option models.
"""

from __future__ import annotations

from billing.client import BillsyncClient
from billing.manager import ImportManager, build_import_manager
from core.config import BillsyncConfig
from core.errors import (
    BillingImportError,
    BillingSourceError,
    BillingStorageError,
    BillsyncError,
    ErrorKind,
)
from core.types import (
    BillingRecord,
    FileImportOptions,
    ImportOptions,
    ImportResult,
    ImportState,
    ImportStats,
)

__all__ = [
    "BillingImportError",
    "BillingRecord",
    "BillingSourceError",
    "BillingStorageError",
    "BillsyncClient",
    "BillsyncConfig",
    "BillsyncError",
    "ErrorKind",
    "FileImportOptions",
    "ImportManager",
    "ImportOptions",
    "ImportResult",
    "ImportState",
    "ImportStats",
    "build_import_manager",
]
