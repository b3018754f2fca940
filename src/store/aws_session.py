"""boto3 session and client helpers.

This module encapsulates boto3 client creation from runtime config.
Exports and billing tables may live in different accounts, so each
side gets its own profile and region settings.
"""

from __future__ import annotations

from typing import Any

from core.config import BillsyncConfig
from core.errors import BillsyncDependencyError, BillsyncError


def create_s3_client(config: BillsyncConfig) -> Any:
    """Create a boto3 S3 client for the export bucket.

    Args:
        config: Runtime config with optional session settings.

    Returns:
        Boto3 S3 client.

    Raises:
        BillsyncDependencyError: If boto3 is missing.
    """
    session = _create_session(config.s3_profile, config.s3_region)
    return session.client("s3")


def create_dynamodb_client(config: BillsyncConfig) -> Any:
    """Create a boto3 DynamoDB client for the billing tables.

    Args:
        config: Runtime config with optional session settings.

    Returns:
        Boto3 DynamoDB client.

    Raises:
        BillsyncDependencyError: If boto3 is missing.
    """
    session = _create_session(config.dynamodb_profile, config.dynamodb_region)
    client_kwargs: dict[str, str] = {}
    if config.dynamodb_endpoint_url:
        client_kwargs["endpoint_url"] = config.dynamodb_endpoint_url
    return session.client("dynamodb", **client_kwargs)


def resolve_account_id(config: BillsyncConfig) -> str:
    """Return the AWS account id owning the export bucket credentials.

    Args:
        config: Runtime config with optional S3 session settings.

    Returns:
        Twelve-digit account id.

    Raises:
        BillsyncError: If the caller identity cannot be resolved.
    """
    session = _create_session(config.s3_profile, config.s3_region)
    try:
        identity = session.client("sts").get_caller_identity()
    except Exception as error:
        raise BillsyncError(
            f"Failed to resolve AWS account id: {error}. "
            "Check AWS credentials or pass the account id explicitly."
        ) from error
    return str(identity["Account"])


def _create_session(profile: str | None, region: str | None) -> Any:
    """Create a boto3 session.

    Args:
        profile: Optional AWS profile name.
        region: Optional AWS region name.

    Returns:
        Boto3 session.

    Raises:
        BillsyncDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise BillsyncDependencyError(
            "AWS access requires boto3, but it is not installed. "
            "Install boto3 to import billing exports."
        ) from error
    session_kwargs: dict[str, str] = {}
    if profile:
        session_kwargs["profile_name"] = profile
    if region:
        session_kwargs["region_name"] = region
    return boto3.session.Session(**session_kwargs)
