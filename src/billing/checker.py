"""Export change detection.

This module compares the fingerprint stored for an export on its last
import with the export's current fingerprint, and remembers both so the
pipeline can skip re-writing an identical report row.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from billing.record_payload import report_key
from core.constants import DOWNLOAD_CHUNK_SIZE, REPORT_FINGERPRINT_FIELD
from core.errors import BillsyncCheckError
from core.logging_config import get_logger
from store.interfaces import KeyValueStore, ObjectStore

_LOGGER = get_logger(__name__)


class Checker:
    """Decides whether an export needs importing."""

    def __init__(
        self,
        object_store: ObjectStore,
        kv_store: KeyValueStore,
        reports_table: str,
    ) -> None:
        self._object_store = object_store
        self._kv_store = kv_store
        self._reports_table = reports_table
        self._stored_fingerprint = ""
        self._current_fingerprint = ""

    def needs_import(self, bucket: str, source_name: str, object_key: str | None = None) -> bool:
        """Compare stored and current fingerprints of an S3 export.

        Args:
            bucket: Bucket holding the export.
            source_name: Export name, also the reports-table key.
            object_key: Object key when the export sits under a prefix.

        Returns:
            True when the fingerprints differ.

        Raises:
            BillsyncCheckError: If the listing does not match exactly one
                object, or a fingerprint attribute is missing.
        """
        self._stored_fingerprint = self._read_stored_fingerprint(source_name)
        self._current_fingerprint = self._read_object_fingerprint(
            bucket, object_key or source_name
        )
        return self._compare(source_name)

    def needs_import_file(self, path: str | Path, source_name: str) -> bool:
        """Compare the stored fingerprint with the MD5 digest of a local file.

        Args:
            path: Local export file.
            source_name: Reports-table key for the export.

        Returns:
            True when the fingerprints differ.

        Raises:
            BillsyncCheckError: If the file cannot be read.
        """
        self._stored_fingerprint = self._read_stored_fingerprint(source_name)
        self._current_fingerprint = file_fingerprint(path)
        return self._compare(source_name)

    def current_fingerprint(self) -> tuple[bool, str]:
        """Return whether the export is already recorded, and its fingerprint."""
        return (
            self._stored_fingerprint == self._current_fingerprint,
            self._current_fingerprint,
        )

    def _compare(self, source_name: str) -> bool:
        changed = self._stored_fingerprint != self._current_fingerprint
        _LOGGER.info(
            "import_check_completed",
            source_name=source_name,
            stored_fingerprint=self._stored_fingerprint,
            current_fingerprint=self._current_fingerprint,
            needs_import=changed,
        )
        return changed

    def _read_stored_fingerprint(self, source_name: str) -> str:
        item = self._kv_store.get_item(self._reports_table, report_key(source_name))
        if not item:
            return ""
        if REPORT_FINGERPRINT_FIELD not in item:
            raise BillsyncCheckError(
                f"Report row for '{source_name}' in table '{self._reports_table}' "
                f"has no '{REPORT_FINGERPRINT_FIELD}' field. Fix or delete the row."
            )
        return str(item[REPORT_FINGERPRINT_FIELD])

    def _read_object_fingerprint(self, bucket: str, object_key: str) -> str:
        objects = self._object_store.list_objects(bucket, object_key)
        if len(objects) != 1:
            raise BillsyncCheckError(
                f"Found {len(objects)} objects matching s3://{bucket}/{object_key}, "
                "expected exactly one."
            )
        etag = objects[0].etag
        if not etag:
            raise BillsyncCheckError(
                f"Object s3://{bucket}/{objects[0].key} has no ETag to fingerprint."
            )
        return etag.strip('"')


def file_fingerprint(path: str | Path) -> str:
    """Return the MD5 hex digest of a local file.

    This equals the ETag S3 reports for a single-part upload.

    Raises:
        BillsyncCheckError: If the file cannot be read.
    """
    digest = hashlib.md5(usedforsecurity=False)
    try:
        with Path(path).open("rb") as handle:
            for chunk in iter(lambda: handle.read(DOWNLOAD_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as error:
        raise BillsyncCheckError(f"Failed to fingerprint {path}: {error}") from error
    return digest.hexdigest()
