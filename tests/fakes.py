"""In-memory store doubles and archive helpers for billing tests."""

from __future__ import annotations

import hashlib
import io
import zipfile
from pathlib import Path
from typing import Mapping, Sequence

from core.errors import BillsyncStoreError
from core.types import ObjectSummary


class InMemoryObjectStore:
    """Object store keeping object bodies in a dict."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.etags: dict[tuple[str, str], str | None] = {}
        self.downloads: list[str] = []

    def put(self, bucket: str, key: str, body: bytes, etag: str | None = "") -> None:
        self.objects[(bucket, key)] = body
        self.etags[(bucket, key)] = (
            f'"{hashlib.md5(body).hexdigest()}"' if etag == "" else etag
        )

    def list_objects(self, bucket: str, prefix: str) -> list[ObjectSummary]:
        return [
            ObjectSummary(key=key, etag=self.etags[(name, key)], size=len(body))
            for (name, key), body in sorted(self.objects.items())
            if name == bucket and key.startswith(prefix)
        ]

    def download(self, bucket: str, key: str, destination: Path) -> int:
        if (bucket, key) not in self.objects:
            raise BillsyncStoreError(f"NoSuchKey: s3://{bucket}/{key}")
        self.downloads.append(key)
        destination.write_bytes(self.objects[(bucket, key)])
        return len(self.objects[(bucket, key)])


class InMemoryKeyValueStore:
    """Key-value store with scripted batch-put behavior.

    ``unprocessed_schedule`` lists, per ``batch_put`` call, how many of the
    trailing items are reported unprocessed. ``fail_on_call`` makes the
    given 1-based call raise a store error.
    """

    def __init__(
        self,
        unprocessed_schedule: Sequence[int] = (),
        fail_on_call: int | None = None,
    ) -> None:
        self.tables: dict[str, dict[str, dict[str, object]]] = {}
        self.batch_calls: list[list[dict[str, object]]] = []
        self.put_calls: list[tuple[str, dict[str, object]]] = []
        self._unprocessed_schedule = list(unprocessed_schedule)
        self._fail_on_call = fail_on_call

    def get_item(self, table: str, key: Mapping[str, object]) -> dict[str, object] | None:
        item = self.tables.get(table, {}).get(_key_value(key))
        return dict(item) if item is not None else None

    def put_item(self, table: str, item: Mapping[str, object]) -> None:
        self.put_calls.append((table, dict(item)))
        self._store(table, item)

    def batch_put(
        self,
        table: str,
        items: Sequence[Mapping[str, object]],
    ) -> list[dict[str, object]]:
        self.batch_calls.append([dict(item) for item in items])
        if self._fail_on_call == len(self.batch_calls):
            raise BillsyncStoreError("ProvisionedThroughputExceededException")
        unprocessed_count = self._unprocessed_schedule.pop(0) if self._unprocessed_schedule else 0
        written_count = max(len(items) - unprocessed_count, 0)
        for item in items[:written_count]:
            self._store(table, item)
        return [dict(item) for item in items[written_count:]]

    def rows(self, table: str) -> list[dict[str, object]]:
        return list(self.tables.get(table, {}).values())

    def _store(self, table: str, item: Mapping[str, object]) -> None:
        self.tables.setdefault(table, {})[_key_value(item)] = dict(item)


def _key_value(item: Mapping[str, object]) -> str:
    if "Id" in item:
        return str(item["Id"])
    return str(item["name"])


def zip_bytes(entries: Mapping[str, bytes]) -> bytes:
    """Build an in-memory zip archive from entry names and bodies."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, body in entries.items():
            archive.writestr(name, body)
    return buffer.getvalue()
