"""Unit tests for batched record persistence."""

from __future__ import annotations

import pytest

from billing.batch_writer import BatchWriter
from billing.record_converter import build_record_key
from core.errors import BillingStorageError, ErrorKind
from core.types import BillingRecord, FlushResult, ImportStats
from tests.fakes import InMemoryKeyValueStore

_TABLE = "billing-records"


def _record(index: int) -> BillingRecord:
    record_id = f"rec-{index:03d}"
    return BillingRecord(
        id=build_record_key("demo-report", record_id),
        report_name="demo-report",
        record_id=record_id,
        usage_quantity=0.5,
    )


def _writer(
    store: InMemoryKeyValueStore,
    stats: ImportStats,
    delays: list[float] | None = None,
) -> BatchWriter:
    sleeps = delays if delays is not None else []
    return BatchWriter(store, _TABLE, stats, backoff_seconds=0.1, sleep=sleeps.append)


def test_add_flushes_exactly_once_at_batch_limit() -> None:
    """Adding 25 records should trigger exactly one flush."""
    store = InMemoryKeyValueStore()
    writer = _writer(store, ImportStats())

    results = [writer.add(_record(index)) for index in range(25)]

    assert (len(store.batch_calls), len(store.batch_calls[0]), results[-1]) == (
        1,
        25,
        FlushResult(rejected_record_ids=(), processed_count=25),
    )


def test_flush_writes_remaining_partial_batch() -> None:
    """The final flush should write records below the batch limit."""
    store = InMemoryKeyValueStore()
    stats = ImportStats()
    writer = _writer(store, stats)
    for index in range(30):
        writer.add(_record(index))

    result = writer.flush()

    assert (result.processed_count, stats.loaded, len(store.rows(_TABLE))) == (5, 30, 30)


def test_flush_without_pending_records_is_noop() -> None:
    """Flushing an empty buffer should not call the store."""
    store = InMemoryKeyValueStore()

    result = _writer(store, ImportStats()).flush()

    assert (result, store.batch_calls) == (FlushResult(), [])


def test_flush_retries_only_unprocessed_items() -> None:
    """Retries should resubmit only the items the store left unprocessed."""
    store = InMemoryKeyValueStore(unprocessed_schedule=[3, 1, 0])
    stats = ImportStats()
    delays: list[float] = []
    writer = _writer(store, stats, delays)
    for index in range(10):
        writer.add(_record(index))

    result = writer.flush()

    assert (
        [len(call) for call in store.batch_calls],
        result.processed_count,
        stats.loaded,
        delays,
    ) == ([10, 3, 1], 10, 10, [0.1, 0.2])


def test_flush_reports_items_unprocessed_after_all_attempts() -> None:
    """K items still unprocessed after three attempts should fail the flush."""
    store = InMemoryKeyValueStore(unprocessed_schedule=[2, 2, 2])
    stats = ImportStats()
    writer = _writer(store, stats)
    for index in range(5):
        writer.add(_record(index))

    with pytest.raises(BillingStorageError) as error_info:
        writer.flush()

    error = error_info.value
    assert (
        error.kind,
        error.failed_record_ids,
        error.processed_count,
        stats.loaded,
        stats.failed,
        len(store.batch_calls),
    ) == (ErrorKind.STORAGE, ("rec-003", "rec-004"), 3, 3, 2, 3)


def test_flush_store_exception_fails_remaining_records() -> None:
    """A failing store request should report every remaining record as failed."""
    store = InMemoryKeyValueStore(unprocessed_schedule=[1], fail_on_call=2)
    stats = ImportStats()
    writer = _writer(store, stats)
    for index in range(4):
        writer.add(_record(index))

    with pytest.raises(BillingStorageError) as error_info:
        writer.flush()

    assert (error_info.value.failed_record_ids, stats.loaded, stats.failed) == (
        ("rec-003",),
        3,
        1,
    )


def test_add_duplicate_key_flushes_pending_batch_first() -> None:
    """A record whose key is already pending should start a new batch."""
    store = InMemoryKeyValueStore()
    writer = _writer(store, ImportStats())
    writer.add(_record(1))
    writer.add(_record(2))

    result = writer.add(_record(1))

    assert (result, writer.pending_count, len(store.batch_calls)) == (
        FlushResult(rejected_record_ids=(), processed_count=2),
        1,
        1,
    )
