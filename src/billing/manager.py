"""Billing import pipeline orchestration.

This module runs one import through check, fetch, unpack, scan, and
report states. Row-scoped errors are counted and skipped; every other
error aborts the run with the partial counters attached.
"""

from __future__ import annotations

import functools
import os
import time
from pathlib import Path
from typing import Callable

from billing.batch_writer import BatchWriter
from billing.checker import Checker
from billing.naming import build_object_key, build_source_name
from billing.parallel_scan import ParallelScanner
from billing.record_converter import RecordConverter
from billing.record_payload import report_to_item
from billing.retriever import Retriever, unpack_archive
from core.config import BillsyncConfig
from core.constants import ARCHIVE_EXTENSION
from core.errors import (
    BillingImportError,
    BillingStorageError,
    BillsyncConfigError,
    BillsyncRetrieveError,
    ErrorKind,
)
from core.logging_config import get_logger
from core.types import (
    FileImportOptions,
    ImportOptions,
    ImportResult,
    ImportState,
    ImportStats,
    ReportRecord,
)
from store.interfaces import KeyValueStore, ObjectStore

_LOGGER = get_logger(__name__)

_ROW_SCOPED_KINDS = frozenset({ErrorKind.CSV, ErrorKind.CONVERT})


def should_skip(error: BillingImportError) -> bool:
    """Return whether an import error only affects its own row."""
    return error.kind in _ROW_SCOPED_KINDS


class ImportManager:
    """Runs billing imports against an object store and a key-value store.

    One manager runs one import at a time; ``state`` and ``last_stats``
    describe the most recent run.
    """

    def __init__(
        self,
        config: BillsyncConfig,
        object_store: ObjectStore,
        kv_store: KeyValueStore,
        account_id_resolver: Callable[[], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._object_store = object_store
        self._kv_store = kv_store
        self._account_id_resolver = account_id_resolver
        self._sleep = sleep
        self._state = ImportState.IDLE
        self._last_stats = ImportStats()

    @property
    def state(self) -> ImportState:
        """Return the state of the current or last import."""
        return self._state

    @property
    def last_stats(self) -> ImportStats:
        """Return the counters of the current or last import."""
        return self._last_stats

    def import_period(self, options: ImportOptions) -> ImportResult:
        """Import one billing month from the export bucket.

        Args:
            options: Period, bucket, and optional account id and key prefix.

        Returns:
            Run outcome with final counters.

        Raises:
            BillsyncConfigError: If no account id is given or resolvable.
            BillsyncCheckError: If fingerprints cannot be compared.
            BillsyncRetrieveError: If the export cannot be fetched or unpacked.
            BillingSourceError: If the period is malformed or the export CSV
                cannot be read.
            BillingStorageError: If a batch is rejected after all retries.
        """
        stats = self._start(period=options.period, bucket=options.bucket)
        source_name = options.period
        converter: RecordConverter | None = None
        try:
            account_id = options.account_id or self._resolve_account_id()
            source_name = build_source_name(account_id, options.period)
            checker = Checker(self._object_store, self._kv_store, self._config.reports_table)
            converter = RecordConverter(source_name, stats)
            self._transition(ImportState.CHECKING, source_name)
            object_key = build_object_key(options.key_prefix, source_name)
            if not checker.needs_import(options.bucket, source_name, object_key):
                return self._finish_unchanged(source_name, checker, stats)
            retriever = Retriever(self._object_store, options.bucket, options.key_prefix)
            self._transition(ImportState.FETCHING, source_name)
            archive_path = retriever.fetch(source_name, f"{self._config.download_dir}{os.sep}")
            self._transition(ImportState.UNPACKING, source_name)
            unpacked = retriever.unpack(archive_path, self._config.unpack_dir)
            csv_path = locate_export_csv(unpacked)
            return self._scan_and_report(source_name, csv_path, checker, converter, stats)
        except Exception as error:
            self._abort(source_name, error, stats)
            raise
        finally:
            if converter is not None:
                converter.close()
            self._log_summary(source_name, stats)

    def import_file(self, options: FileImportOptions) -> ImportResult:
        """Import a local export file.

        The file is fingerprinted by its MD5 digest. Zip archives are
        unpacked into the configured unpack directory first.

        Args:
            options: Local file path and optional report name.

        Returns:
            Run outcome with final counters.

        Raises:
            BillsyncCheckError: If the file cannot be fingerprinted.
            BillsyncRetrieveError: If the archive cannot be unpacked.
            BillingSourceError: If the export CSV cannot be read.
            BillingStorageError: If a batch is rejected after all retries.
        """
        file_path = Path(options.file_path).expanduser()
        source_name = options.report_name or file_path.name
        stats = self._start(source_name=source_name)
        checker = Checker(self._object_store, self._kv_store, self._config.reports_table)
        converter = RecordConverter(source_name, stats)
        try:
            self._transition(ImportState.CHECKING, source_name)
            if not checker.needs_import_file(file_path, source_name):
                return self._finish_unchanged(source_name, checker, stats)
            csv_path = file_path
            if file_path.suffix == ARCHIVE_EXTENSION:
                self._transition(ImportState.UNPACKING, source_name)
                csv_path = locate_export_csv(unpack_archive(file_path, self._config.unpack_dir))
            return self._scan_and_report(source_name, csv_path, checker, converter, stats)
        except Exception as error:
            self._abort(source_name, error, stats)
            raise
        finally:
            converter.close()
            self._log_summary(source_name, stats)

    def _start(self, **fields: object) -> ImportStats:
        self._last_stats = ImportStats()
        self._state = ImportState.IDLE
        _LOGGER.info("import_started", **fields)
        return self._last_stats

    def _resolve_account_id(self) -> str:
        if self._account_id_resolver is None:
            raise BillsyncConfigError(
                "No account id given and no account id resolver configured. "
                "Pass the payer account id explicitly."
            )
        return self._account_id_resolver()

    def _scan_and_report(
        self,
        source_name: str,
        csv_path: Path,
        checker: Checker,
        converter: RecordConverter,
        stats: ImportStats,
    ) -> ImportResult:
        self._transition(ImportState.SCANNING, source_name)
        converter.open(csv_path)
        if self._config.workers > 1:
            ParallelScanner(
                converter,
                self._new_writer,
                self._handle_row_error,
                self._config.workers,
            ).run(stats)
        else:
            self._scan_serial(converter, stats)
        self._transition(ImportState.REPORTING, source_name)
        report_written = self._write_report(source_name, checker, stats)
        self._transition(ImportState.DONE, source_name)
        return ImportResult(
            source_name=source_name,
            state=self._state,
            imported=True,
            report_written=report_written,
            fingerprint=checker.current_fingerprint()[1],
            stats=stats,
        )

    def _scan_serial(self, converter: RecordConverter, stats: ImportStats) -> None:
        writer = self._new_writer(stats)
        while True:
            try:
                record = converter.next_record()
            except BillingImportError as error:
                self._handle_row_error(error, stats)
                continue
            if record is None:
                break
            writer.add(record)
        writer.flush()

    def _new_writer(self, stats: ImportStats) -> BatchWriter:
        return BatchWriter(
            self._kv_store,
            self._config.records_table,
            stats,
            max_attempts=self._config.batch_retry_attempts,
            backoff_seconds=self._config.retry_backoff_seconds,
            sleep=self._sleep,
        )

    def _handle_row_error(self, error: BillingImportError, stats: ImportStats) -> None:
        if not should_skip(error):
            raise error
        stats.warnings += 1
        _LOGGER.warning(
            "import_row_skipped",
            kind=error.kind.value,
            line_number=error.line_number,
            error=str(error),
        )

    def _write_report(self, source_name: str, checker: Checker, stats: ImportStats) -> bool:
        already_present, fingerprint = checker.current_fingerprint()
        if already_present:
            _LOGGER.info("import_report_skipped", source_name=source_name)
            return False
        report = ReportRecord(
            source_name=source_name,
            fingerprint=fingerprint,
            error_count=stats.error_count,
        )
        self._kv_store.put_item(self._config.reports_table, report_to_item(report))
        _LOGGER.info(
            "import_report_written",
            source_name=source_name,
            fingerprint=fingerprint,
            error_count=report.error_count,
        )
        return True

    def _finish_unchanged(
        self,
        source_name: str,
        checker: Checker,
        stats: ImportStats,
    ) -> ImportResult:
        self._transition(ImportState.DONE, source_name)
        return ImportResult(
            source_name=source_name,
            state=self._state,
            imported=False,
            report_written=False,
            fingerprint=checker.current_fingerprint()[1],
            stats=stats,
        )

    def _abort(self, source_name: str, error: Exception, stats: ImportStats) -> None:
        failed_state = self._state
        self._transition(ImportState.ABORTED, source_name)
        if isinstance(error, BillingStorageError):
            error.stats = stats
        _LOGGER.error(
            "import_aborted",
            source_name=source_name,
            failed_state=failed_state.value,
            error_type=type(error).__name__,
            error=str(error),
        )

    def _transition(self, state: ImportState, source_name: str) -> None:
        self._state = state
        _LOGGER.debug("import_state_changed", source_name=source_name, state=state.value)

    def _log_summary(self, source_name: str, stats: ImportStats) -> None:
        _LOGGER.info(
            "import_summary",
            source_name=source_name,
            state=self._state.value,
            read=stats.read,
            loaded=stats.loaded,
            warnings=stats.warnings,
            failed=stats.failed,
        )


def locate_export_csv(unpacked: Path) -> Path:
    """Return the export CSV inside an unpack result.

    Args:
        unpacked: Extracted file, or extraction directory.

    Returns:
        Path of the single CSV file.

    Raises:
        BillsyncRetrieveError: If a directory holds zero or several CSV files.
    """
    if unpacked.is_file():
        return unpacked
    candidates = sorted(path for path in unpacked.rglob("*.csv") if path.is_file())
    if len(candidates) != 1:
        raise BillsyncRetrieveError(
            f"Expected exactly one CSV file under {unpacked}, found {len(candidates)}. "
            "Clear the unpack directory and retry."
        )
    return candidates[0]


def build_import_manager(config: BillsyncConfig) -> ImportManager:
    """Build a manager wired to S3 and DynamoDB through boto3.

    Args:
        config: Runtime configuration.

    Returns:
        Import manager using AWS-backed stores.

    Raises:
        BillsyncDependencyError: If boto3 is missing.
    """
    from store.aws_session import (
        create_dynamodb_client,
        create_s3_client,
        resolve_account_id,
    )
    from store.dynamo_table import DynamoTableStore
    from store.s3_objects import S3ObjectStore

    return ImportManager(
        config,
        S3ObjectStore(create_s3_client(config)),
        DynamoTableStore(create_dynamodb_client(config)),
        account_id_resolver=functools.partial(resolve_account_id, config),
    )
