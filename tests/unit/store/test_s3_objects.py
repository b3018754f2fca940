"""Unit tests for the S3 object store adapter."""

from __future__ import annotations

import io
from pathlib import Path

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from core.errors import BillsyncStoreError
from core.types import ObjectSummary
from store.s3_objects import S3ObjectStore


def _client() -> object:
    return boto3.session.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1",
    ).client("s3")


def test_list_objects_returns_keys_and_etags() -> None:
    """Listings should expose key, ETag, and size."""
    client = _client()
    stubber = Stubber(client)
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "report.csv.zip", "ETag": '"abc"', "Size": 12}]},
        {"Bucket": "billing-exports", "Prefix": "report.csv.zip"},
    )

    with stubber:
        summaries = S3ObjectStore(client).list_objects("billing-exports", "report.csv.zip")

    assert summaries == [ObjectSummary(key="report.csv.zip", etag='"abc"', size=12)]


def test_download_streams_body_to_file(tmp_path: Path) -> None:
    """Object bodies should be written to the destination file."""
    client = _client()
    stubber = Stubber(client)
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"zip-body"), len(b"zip-body"))},
        {"Bucket": "billing-exports", "Key": "report.csv.zip"},
    )
    destination = tmp_path / "report.csv.zip"

    with stubber:
        size = S3ObjectStore(client).download("billing-exports", "report.csv.zip", destination)

    assert (size, destination.read_bytes()) == (8, b"zip-body")


def test_download_missing_object_raises_store_error(tmp_path: Path) -> None:
    """Missing objects should surface as store errors."""
    client = _client()
    stubber = Stubber(client)
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    with stubber, pytest.raises(BillsyncStoreError):
        S3ObjectStore(client).download("billing-exports", "missing.zip", tmp_path / "out.zip")

    assert True
