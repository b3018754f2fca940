"""Worker-pool scanning of one export.

The calling thread reads raw rows into a bounded queue; each worker
converts rows and writes them through its own ``BatchWriter`` with its
own counters. Counters are merged after all workers have joined. Row
order across workers is not preserved; batch atomicity and retry are.
"""

from __future__ import annotations

import queue
import threading
from typing import Callable

from billing.batch_writer import BatchWriter
from billing.record_converter import RawRow, RecordConverter
from core.constants import WORKER_QUEUE_ROWS_PER_WORKER
from core.errors import BillingImportError
from core.logging_config import get_logger
from core.types import ImportStats

_LOGGER = get_logger(__name__)

RowErrorHandler = Callable[[BillingImportError, ImportStats], None]
WriterFactory = Callable[[ImportStats], BatchWriter]


class ParallelScanner:
    """Fans rows of one open export out to converter/writer workers."""

    def __init__(
        self,
        converter: RecordConverter,
        writer_factory: WriterFactory,
        on_row_error: RowErrorHandler,
        workers: int,
    ) -> None:
        self._converter = converter
        self._writer_factory = writer_factory
        self._on_row_error = on_row_error
        self._workers = workers
        self._errors: list[BaseException] = []
        self._errors_lock = threading.Lock()
        self._stop = threading.Event()

    def run(self, stats: ImportStats) -> None:
        """Scan the converter's export to completion.

        Args:
            stats: Run counters; rows read are counted by the converter and
                worker counters are merged in after the join.

        Raises:
            BillingSourceError: If the export stream cannot be read.
            BillingStorageError: If any worker's flush fails.
        """
        rows: queue.Queue[RawRow | None] = queue.Queue(
            maxsize=self._workers * WORKER_QUEUE_ROWS_PER_WORKER
        )
        worker_stats = [ImportStats() for _ in range(self._workers)]
        threads = [
            threading.Thread(
                target=self._work,
                args=(rows, worker_stats[index]),
                name=f"billsync-scan-{index}",
                daemon=True,
            )
            for index in range(self._workers)
        ]
        for thread in threads:
            thread.start()
        _LOGGER.info("parallel_scan_started", workers=self._workers)
        try:
            self._produce(rows, stats)
        except BaseException:
            self._stop.set()
            raise
        finally:
            for _ in threads:
                rows.put(None)
            for thread in threads:
                thread.join()
            for counters in worker_stats:
                stats.merge(counters)
        if self._errors:
            raise self._errors[0]

    def _produce(self, rows: "queue.Queue[RawRow | None]", stats: ImportStats) -> None:
        while not self._stop.is_set():
            try:
                row = self._converter.read_row()
            except BillingImportError as error:
                self._on_row_error(error, stats)
                continue
            if row is None:
                return
            rows.put(row)

    def _work(self, rows: "queue.Queue[RawRow | None]", stats: ImportStats) -> None:
        writer = self._writer_factory(stats)
        while True:
            row = rows.get()
            if row is None:
                break
            if self._stop.is_set():
                continue
            try:
                self._handle_row(row, writer, stats)
            except Exception as error:
                self._fail(error)
        if self._stop.is_set():
            return
        try:
            writer.flush()
        except Exception as error:
            self._fail(error)

    def _handle_row(self, row: RawRow, writer: BatchWriter, stats: ImportStats) -> None:
        try:
            record = self._converter.convert_row(row)
        except BillingImportError as error:
            self._on_row_error(error, stats)
            return
        writer.add(record)

    def _fail(self, error: BaseException) -> None:
        with self._errors_lock:
            self._errors.append(error)
        self._stop.set()
