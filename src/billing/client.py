"""Python SDK for billing imports.

This module exposes high-level import APIs backed by an ``ImportManager``
built from runtime configuration.
"""

from __future__ import annotations

from typing import Iterator

from core.config import BillsyncConfig
from core.run_spec_execution import execute_run_spec_file
from core.types import FileImportOptions, ImportOptions, ImportResult, ImportStats

from billing.manager import ImportManager, build_import_manager


class BillsyncClient:
    """Primary SDK entry point for billing imports."""

    def __init__(
        self,
        config: BillsyncConfig | None = None,
        manager: ImportManager | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            manager: Optional pre-wired manager; built from AWS clients
                on first use when omitted.
        """
        self._config = config or BillsyncConfig.from_env()
        self._manager = manager

    @property
    def config(self) -> BillsyncConfig:
        """Return the runtime configuration."""
        return self._config

    @property
    def last_stats(self) -> ImportStats | None:
        """Return counters of the latest import, or None before any import."""
        if self._manager is None:
            return None
        return self._manager.last_stats

    def import_period(self, options: ImportOptions) -> ImportResult:
        """Import one billing month from the export bucket.

        Args:
            options: Import options.

        Returns:
            Import outcome.
        """
        return self._get_manager().import_period(options)

    def import_file(self, options: FileImportOptions) -> ImportResult:
        """Import a local ``.csv`` or ``.csv.zip`` export.

        Args:
            options: File import options.

        Returns:
            Import outcome.
        """
        return self._get_manager().import_file(options)

    def run_spec(self, spec_file: str) -> Iterator[ImportResult]:
        """Execute a YAML run-spec through the shared execution engine.

        Args:
            spec_file: Path to YAML run-spec file.

        Returns:
            Iterator yielding one result per import as it completes, in file
            order. The file is loaded and validated before the first import.
        """
        return execute_run_spec_file(self, spec_file)

    def _get_manager(self) -> ImportManager:
        if self._manager is None:
            self._manager = build_import_manager(self._config)
        return self._manager
