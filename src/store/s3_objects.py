"""S3-backed object store for billing exports.

This module lists export objects with their ETags and streams object
bodies to local files for the retriever.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from core.constants import DOWNLOAD_CHUNK_SIZE
from core.errors import BillsyncStoreError
from core.types import ObjectSummary


class S3ObjectStore:
    """Object store adapter over a boto3 S3 client."""

    def __init__(self, s3_client: Any) -> None:
        self._client = s3_client

    def list_objects(self, bucket: str, prefix: str) -> list[ObjectSummary]:
        """List objects under a key prefix.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix to match.

        Returns:
            Object summaries in key order.

        Raises:
            BillsyncStoreError: If the listing fails.
        """
        paginator = self._client.get_paginator("list_objects_v2")
        summaries: list[ObjectSummary] = []
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    summaries.append(
                        ObjectSummary(
                            key=obj["Key"],
                            etag=obj.get("ETag"),
                            size=int(obj.get("Size", 0)),
                        )
                    )
        except Exception as error:
            raise BillsyncStoreError(
                f"Failed to list s3://{bucket}/{prefix}: {error}. "
                "Check the bucket name and AWS credentials."
            ) from error
        return sorted(summaries, key=lambda summary: summary.key)

    def download(self, bucket: str, key: str, destination: Path) -> int:
        """Stream one object into a local file.

        Args:
            bucket: S3 bucket name.
            key: Object key.
            destination: Local file path, created or truncated.

        Returns:
            Number of bytes written.

        Raises:
            BillsyncStoreError: If the object cannot be fetched.
        """
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            body = response["Body"]
            with destination.open("wb") as handle:
                shutil.copyfileobj(body, handle, DOWNLOAD_CHUNK_SIZE)
        except Exception as error:
            raise BillsyncStoreError(
                f"Failed to download s3://{bucket}/{key}: {error}. "
                "Check that the object exists and AWS credentials can read it."
            ) from error
        return destination.stat().st_size
