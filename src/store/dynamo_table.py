"""DynamoDB-backed key-value store.

This module maps plain Python item dictionaries onto DynamoDB attribute
values and exposes the get/put/batch-put operations the pipeline needs.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from core.errors import BillsyncDependencyError, BillsyncStoreError


class DynamoTableStore:
    """Key-value store adapter over a boto3 DynamoDB client."""

    def __init__(self, dynamodb_client: Any) -> None:
        self._client = dynamodb_client

    def get_item(self, table: str, key: Mapping[str, object]) -> dict[str, object] | None:
        """Read one item by primary key.

        Args:
            table: Table name.
            key: Primary key attributes.

        Returns:
            Item attributes, or None when no item matches.

        Raises:
            BillsyncStoreError: If the read fails.
        """
        raw_key = serialize_item(key)
        try:
            response = self._client.get_item(TableName=table, Key=raw_key)
        except Exception as error:
            raise BillsyncStoreError(
                f"Failed to read item {dict(key)} from table '{table}': {error}. "
                "Check the table exists and AWS credentials can read it."
            ) from error
        raw_item = response.get("Item")
        if not raw_item:
            return None
        return deserialize_item(raw_item)

    def put_item(self, table: str, item: Mapping[str, object]) -> None:
        """Write one item, replacing any item with the same key.

        Raises:
            BillsyncStoreError: If the write fails.
        """
        raw_item = serialize_item(item)
        try:
            self._client.put_item(TableName=table, Item=raw_item)
        except Exception as error:
            raise BillsyncStoreError(
                f"Failed to write item to table '{table}': {error}. "
                "Check the table exists and AWS credentials can write it."
            ) from error

    def batch_put(
        self,
        table: str,
        items: Sequence[Mapping[str, object]],
    ) -> list[dict[str, object]]:
        """Submit items as one batch-write request.

        Args:
            table: Table name.
            items: Items to put; at most the store's batch limit.

        Returns:
            Items the store reported as unprocessed.

        Raises:
            BillsyncStoreError: If the request itself fails.
        """
        if not items:
            return []
        request_items = {
            table: [{"PutRequest": {"Item": serialize_item(item)}} for item in items]
        }
        try:
            response = self._client.batch_write_item(RequestItems=request_items)
        except Exception as error:
            raise BillsyncStoreError(
                f"Batch write of {len(items)} items to table '{table}' failed: {error}."
            ) from error
        unprocessed = response.get("UnprocessedItems", {}).get(table, [])
        return [deserialize_item(request["PutRequest"]["Item"]) for request in unprocessed]


def serialize_item(item: Mapping[str, object]) -> dict[str, Any]:
    """Convert a plain item into DynamoDB attribute values."""
    serializer, _ = _load_type_codecs()
    return {name: serializer.serialize(value) for name, value in item.items()}


def deserialize_item(raw_item: Mapping[str, Any]) -> dict[str, object]:
    """Convert DynamoDB attribute values into a plain item."""
    _, deserializer = _load_type_codecs()
    return {name: deserializer.deserialize(value) for name, value in raw_item.items()}


def _load_type_codecs() -> tuple[Any, Any]:
    """Return boto3's DynamoDB type serializer and deserializer.

    Raises:
        BillsyncDependencyError: If boto3 is missing.
    """
    try:
        from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
    except ImportError as error:
        raise BillsyncDependencyError(
            "DynamoDB access requires boto3, but it is not installed. "
            "Install boto3 to import billing exports."
        ) from error
    return TypeSerializer(), TypeDeserializer()
