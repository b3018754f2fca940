"""Integration tests for the billing import workflow."""

from __future__ import annotations

import hashlib
from pathlib import Path

from billing.client import BillsyncClient
from billing.manager import ImportManager
from billing.naming import build_source_name
from billing.record_payload import record_from_item
from core.config import BillsyncConfig
from core.types import ImportOptions, ImportStats
from tests.fakes import InMemoryKeyValueStore, InMemoryObjectStore, zip_bytes
from tests.fixture_paths import fixture_path

_BUCKET = "billing-exports"
_ACCOUNT = "111122223333"


def _client(
    tmp_path: Path,
    objects: InMemoryObjectStore,
    kv_store: InMemoryKeyValueStore,
) -> BillsyncClient:
    config = BillsyncConfig(download_dir=tmp_path / "download", unpack_dir=tmp_path / "unzip")
    return BillsyncClient(config, manager=ImportManager(config, objects, kv_store))


def _publish(objects: InMemoryObjectStore) -> str:
    source_name = build_source_name(_ACCOUNT, "2017-07")
    csv_body = fixture_path("csvs/mixed-errors-2017-07.csv").read_bytes()
    objects.put(_BUCKET, source_name, zip_bytes({source_name.removesuffix(".zip"): csv_body}))
    return source_name


def test_billing_import_end_to_end_persists_valid_row(tmp_path: Path) -> None:
    """A mixed export should persist its single valid row with typed values."""
    objects, kv_store = InMemoryObjectStore(), InMemoryKeyValueStore()
    source_name = _publish(objects)
    client = _client(tmp_path, objects, kv_store)

    result = client.import_period(
        ImportOptions(period="2017-07", bucket=_BUCKET, account_id=_ACCOUNT)
    )
    records = [record_from_item(item) for item in kv_store.rows("billing-records")]

    assert (
        result.stats,
        [(record.report_name, record.record_id, record.usage_quantity) for record in records],
        dict(records[0].tags),
    ) == (
        ImportStats(read=3, loaded=1, warnings=2, failed=0),
        [(source_name, "400000000123456789000010", 0.5)],
        {"user_env": "prod", "aws_createdBy": ""},
    )


def test_billing_import_second_run_is_noop(tmp_path: Path) -> None:
    """Re-running against an unchanged export should not write a second report."""
    objects, kv_store = InMemoryObjectStore(), InMemoryKeyValueStore()
    _publish(objects)
    client = _client(tmp_path, objects, kv_store)
    options = ImportOptions(period="2017-07", bucket=_BUCKET, account_id=_ACCOUNT)

    first = client.import_period(options)
    second = client.import_period(options)

    assert (
        first.report_written,
        second.imported,
        second.report_written,
        len(kv_store.put_calls),
    ) == (True, False, False, 1)


def test_billing_import_reimport_upserts_records(tmp_path: Path) -> None:
    """Forcing a re-import should overwrite records instead of duplicating them."""
    objects, kv_store = InMemoryObjectStore(), InMemoryKeyValueStore()
    source_name = _publish(objects)
    client = _client(tmp_path, objects, kv_store)
    options = ImportOptions(period="2017-07", bucket=_BUCKET, account_id=_ACCOUNT)
    client.import_period(options)
    del kv_store.tables["billing-reports"][source_name]

    result = client.import_period(options)

    assert (result.imported, len(kv_store.rows("billing-records"))) == (True, 1)


def test_billing_import_run_spec_executes_file_import(tmp_path: Path) -> None:
    """A run-spec listing a local file should import it through the client."""
    csv_path = fixture_path("csvs/valid-2015-04.csv")
    spec_path = tmp_path / "imports.yaml"
    spec_path.write_text(
        f"version: 1\nimports:\n  - file: {csv_path}\n    report_name: manual-2015-04\n",
        encoding="utf-8",
    )
    kv_store = InMemoryKeyValueStore()
    client = _client(tmp_path, InMemoryObjectStore(), kv_store)

    results = list(client.run_spec(str(spec_path)))

    assert (
        [result.stats.loaded for result in results],
        kv_store.rows("billing-reports"),
    ) == (
        [3],
        [
            {
                "name": "manual-2015-04",
                "md5": hashlib.md5(csv_path.read_bytes()).hexdigest(),
                "errors": 0,
            }
        ],
    )
