"""Collaborator protocols required by the billing pipeline.

The pipeline only depends on these capability groups, so boto3-backed
adapters and in-memory test doubles are interchangeable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol, Sequence

from core.types import ObjectSummary

Item = Mapping[str, object]


class ObjectStore(Protocol):
    """Object listing and download operations."""

    def list_objects(self, bucket: str, prefix: str) -> list[ObjectSummary]: ...

    def download(self, bucket: str, key: str, destination: Path) -> int: ...


class KeyValueStore(Protocol):
    """Table row operations keyed by item names."""

    def get_item(self, table: str, key: Item) -> dict[str, object] | None: ...

    def put_item(self, table: str, item: Item) -> None: ...

    def batch_put(self, table: str, items: Sequence[Item]) -> list[dict[str, object]]: ...
