"""Unit tests for export change detection."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from billing.checker import Checker, file_fingerprint
from core.errors import BillsyncCheckError
from tests.fakes import InMemoryKeyValueStore, InMemoryObjectStore

_BUCKET = "billing-exports"
_SOURCE = "1111-aws-billing-detailed-line-items-with-resources-and-tags-2017-07.csv.zip"
_REPORTS = "billing-reports"


def _stores(stored_md5: str | None = None) -> tuple[InMemoryObjectStore, InMemoryKeyValueStore]:
    objects = InMemoryObjectStore()
    objects.put(_BUCKET, _SOURCE, b"export-body")
    kv_store = InMemoryKeyValueStore()
    if stored_md5 is not None:
        kv_store.put_item(_REPORTS, {"name": _SOURCE, "md5": stored_md5, "errors": 0})
    return objects, kv_store


def test_needs_import_true_without_stored_report() -> None:
    """A missing report row should count as an empty fingerprint."""
    objects, kv_store = _stores()

    assert Checker(objects, kv_store, _REPORTS).needs_import(_BUCKET, _SOURCE) is True


def test_needs_import_false_for_matching_fingerprint() -> None:
    """Equal fingerprints should skip the import."""
    objects, kv_store = _stores(hashlib.md5(b"export-body").hexdigest())
    checker = Checker(objects, kv_store, _REPORTS)

    needs_import = checker.needs_import(_BUCKET, _SOURCE)

    assert (needs_import, checker.current_fingerprint()[0]) == (False, True)


def test_needs_import_true_for_changed_fingerprint() -> None:
    """Different fingerprints should require an import."""
    objects, kv_store = _stores("stale-md5")
    checker = Checker(objects, kv_store, _REPORTS)

    needs_import = checker.needs_import(_BUCKET, _SOURCE)

    assert (needs_import, checker.current_fingerprint()) == (
        True,
        (False, hashlib.md5(b"export-body").hexdigest()),
    )


def test_needs_import_without_matching_object_raises_error() -> None:
    """An empty listing should be an explicit check error."""
    objects, kv_store = _stores()

    with pytest.raises(BillsyncCheckError):
        Checker(objects, kv_store, _REPORTS).needs_import(_BUCKET, "missing.csv.zip")


def test_needs_import_with_several_objects_raises_error() -> None:
    """More than one matching object should be an explicit check error."""
    objects, kv_store = _stores()
    objects.put(_BUCKET, f"{_SOURCE}.bak", b"other")

    with pytest.raises(BillsyncCheckError):
        Checker(objects, kv_store, _REPORTS).needs_import(_BUCKET, _SOURCE)


def test_needs_import_without_etag_raises_error() -> None:
    """An object without a content fingerprint should be an explicit error."""
    objects, kv_store = _stores()
    objects.put(_BUCKET, _SOURCE, b"export-body", etag=None)

    with pytest.raises(BillsyncCheckError):
        Checker(objects, kv_store, _REPORTS).needs_import(_BUCKET, _SOURCE)


def test_needs_import_with_report_missing_md5_raises_error() -> None:
    """A stored report row without a fingerprint should not default silently."""
    objects, kv_store = _stores()
    kv_store.put_item(_REPORTS, {"name": _SOURCE, "errors": 0})

    with pytest.raises(BillsyncCheckError):
        Checker(objects, kv_store, _REPORTS).needs_import(_BUCKET, _SOURCE)


def test_needs_import_file_uses_md5_digest(tmp_path: Path) -> None:
    """Local files should be fingerprinted by their MD5 digest."""
    export_path = tmp_path / "report-2017-07.csv"
    export_path.write_bytes(b"local-body")
    _, kv_store = _stores()
    kv_store.put_item(
        _REPORTS,
        {"name": "report-2017-07.csv", "md5": hashlib.md5(b"local-body").hexdigest()},
    )

    needs_import = Checker(InMemoryObjectStore(), kv_store, _REPORTS).needs_import_file(
        export_path, "report-2017-07.csv"
    )

    assert needs_import is False


def test_file_fingerprint_missing_file_raises_error(tmp_path: Path) -> None:
    """Unreadable files should raise a check error."""
    with pytest.raises(BillsyncCheckError):
        file_fingerprint(tmp_path / "missing.csv")
