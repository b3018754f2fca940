"""S3 URI parsing helpers.

This module parses ``s3://bucket[/prefix]`` locations accepted wherever
an export bucket is configured.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import BillsyncConfigError


@dataclass(frozen=True)
class S3Location:
    """Parsed S3 location model."""

    bucket: str
    prefix: str


def parse_s3_uri(uri: str) -> S3Location:
    """Parse and validate an S3 URI.

    Args:
        uri: URI in format ``s3://bucket`` or ``s3://bucket/prefix``.

    Returns:
        Parsed bucket and prefix pair; the prefix may be empty.

    Raises:
        BillsyncConfigError: If the URI has no bucket.
    """
    if not uri.startswith("s3://"):
        _raise_uri_error(uri)
    bucket, _, prefix = uri.removeprefix("s3://").partition("/")
    if not bucket:
        _raise_uri_error(uri)
    return S3Location(bucket=bucket, prefix=prefix.strip("/"))


def _raise_uri_error(uri: str) -> None:
    raise BillsyncConfigError(
        f"Invalid S3 URI '{uri}': expected s3://bucket or s3://bucket/prefix."
    )
