"""Batched record persistence with bounded retry.

This module buffers converted records and writes them to the records
table in batches of at most ``MAX_BATCH_SIZE`` items. Items the store
reports as unprocessed are retried alone a bounded number of times;
whatever is still unprocessed afterwards is reported as failed.
"""

from __future__ import annotations

import time
from typing import Callable

from billing.record_payload import record_to_item
from core.constants import (
    DEFAULT_BATCH_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    MAX_BATCH_SIZE,
    RECORD_KEY_FIELD,
)
from core.errors import BillingStorageError, BillsyncStoreError
from core.logging_config import get_logger
from core.types import BillingRecord, FlushResult, ImportStats
from store.interfaces import Item, KeyValueStore

_LOGGER = get_logger(__name__)


class BatchWriter:
    """Accumulates records and flushes them as batch-put requests.

    A writer instance owns its pending buffer and must not be shared
    between concurrent imports.
    """

    def __init__(
        self,
        store: KeyValueStore,
        table: str,
        stats: ImportStats,
        max_attempts: int = DEFAULT_BATCH_RETRY_ATTEMPTS,
        backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._table = table
        self._stats = stats
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._pending: list[tuple[BillingRecord, Item]] = []
        self._pending_keys: set[str] = set()

    @property
    def pending_count(self) -> int:
        """Return the number of buffered records."""
        return len(self._pending)

    def add(self, record: BillingRecord) -> FlushResult | None:
        """Buffer a record, flushing when the batch is full.

        A record whose key is already buffered flushes the buffer first,
        since one batch cannot hold two puts for the same key.

        Args:
            record: Converted record.

        Returns:
            Flush outcome when the call triggered a flush, else None.

        Raises:
            BillingStorageError: If a triggered flush leaves items unwritten.
        """
        result = None
        if record.id in self._pending_keys:
            result = self.flush()
        self._pending.append((record, record_to_item(record)))
        self._pending_keys.add(record.id)
        if len(self._pending) >= MAX_BATCH_SIZE:
            result = self.flush()
        return result

    def flush(self) -> FlushResult:
        """Write every buffered record.

        Returns:
            Ids rejected by the store and the processed count.

        Raises:
            BillingStorageError: If items remain unprocessed after all
                attempts or the store request fails.
        """
        batch = self._pending
        self._pending = []
        self._pending_keys = set()
        if not batch:
            return FlushResult()
        records_by_key = {record.id: record for record, _ in batch}
        remaining: list[Item] = [item for _, item in batch]
        attempt = 0
        while remaining and attempt < self._max_attempts:
            attempt += 1
            if attempt > 1:
                self._wait_before_retry(attempt, len(remaining))
            try:
                unprocessed = self._store.batch_put(self._table, remaining)
            except BillsyncStoreError as error:
                failed_ids = _record_ids(remaining, records_by_key)
                self._account(len(batch) - len(remaining), failed_ids)
                raise BillingStorageError(
                    f"Batch write to table '{self._table}' failed on attempt {attempt}: {error}",
                    failed_record_ids=failed_ids,
                    processed_count=len(batch) - len(remaining),
                ) from error
            remaining = list(unprocessed)
        failed_ids = _record_ids(remaining, records_by_key)
        processed_count = len(batch) - len(remaining)
        self._account(processed_count, failed_ids)
        if failed_ids:
            raise BillingStorageError(
                f"{len(failed_ids)} of {len(batch)} records were not written to table "
                f"'{self._table}' after {attempt} attempts.",
                failed_record_ids=failed_ids,
                processed_count=processed_count,
            )
        _LOGGER.debug(
            "batch_flushed",
            table=self._table,
            batch_size=len(batch),
            attempts=attempt,
        )
        return FlushResult(rejected_record_ids=(), processed_count=processed_count)

    def _wait_before_retry(self, attempt: int, remaining_count: int) -> None:
        delay = self._backoff_seconds * 2 ** (attempt - 2)
        _LOGGER.warning(
            "batch_retry",
            table=self._table,
            attempt=attempt,
            max_attempts=self._max_attempts,
            unprocessed=remaining_count,
            delay_seconds=delay,
        )
        if delay > 0:
            self._sleep(delay)

    def _account(self, processed_count: int, failed_ids: tuple[str, ...]) -> None:
        self._stats.loaded += processed_count
        self._stats.failed += len(failed_ids)


def _record_ids(
    items: list[Item],
    records_by_key: dict[str, BillingRecord],
) -> tuple[str, ...]:
    """Map store items back to source record ids."""
    record_ids: list[str] = []
    for item in items:
        record = records_by_key.get(str(item[RECORD_KEY_FIELD]))
        record_ids.append(record.record_id if record else str(item[RECORD_KEY_FIELD]))
    return tuple(record_ids)
