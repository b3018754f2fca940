"""billsync CLI entry points.

This module exposes commands importing billing exports into the record
store. It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from billing.client import BillsyncClient
from cli.run_spec_command import add_run_spec_command, run_run_spec_command
from core.config import BillsyncConfig
from core.constants import SUPPORTED_LOG_LEVELS
from core.errors import BillingStorageError, BillsyncConfigError, BillsyncError
from core.logging_config import configure_logging
from core.run_spec_execution import format_result
from core.s3_uri import parse_s3_uri
from core.types import FileImportOptions, ImportOptions, ImportStats


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="billsync",
        description="Import detailed billing exports into DynamoDB",
    )
    parser.add_argument("--download-dir", help="Override BILLSYNC_DOWNLOAD_DIR for this command")
    parser.add_argument("--unpack-dir", help="Override BILLSYNC_UNPACK_DIR for this command")
    parser.add_argument("--workers", type=int, help="Override BILLSYNC_WORKERS for this command")
    parser.add_argument(
        "--log-level",
        choices=SUPPORTED_LOG_LEVELS,
        help="Override BILLSYNC_LOG_LEVEL for this command",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_import_command(subparsers)
    _add_import_file_command(subparsers)
    add_run_spec_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the billsync CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args)
    except BillsyncError as error:
        parser.error(str(error))
    configure_logging(config.log_level)
    client = BillsyncClient(config)
    try:
        if args.command == "import":
            return _run_import_command(client, args)
        if args.command == "import-file":
            return _run_import_file_command(client, args)
        if args.command == "run-spec":
            return run_run_spec_command(client, args)
    except BillsyncError as error:
        return _report_failure(client, error)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(args: argparse.Namespace) -> BillsyncConfig:
    """Build runtime config with optional command-line overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Validated config.
    """
    config = BillsyncConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.download_dir:
        overrides["download_dir"] = Path(args.download_dir).expanduser()
    if args.unpack_dir:
        overrides["unpack_dir"] = Path(args.unpack_dir).expanduser()
    if args.workers is not None:
        if args.workers < 1:
            raise BillsyncConfigError(f"--workers must be at least 1, got {args.workers}.")
        overrides["workers"] = args.workers
    if args.log_level:
        overrides["log_level"] = args.log_level
    return replace(config, **overrides) if overrides else config


def _run_import_command(client: BillsyncClient, args: argparse.Namespace) -> int:
    """Handle import command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    bucket, key_prefix = args.bucket, ""
    if bucket.startswith("s3://"):
        location = parse_s3_uri(bucket)
        bucket, key_prefix = location.bucket, location.prefix
    options = ImportOptions(
        period=args.period,
        bucket=bucket,
        account_id=args.account_id,
        key_prefix=key_prefix,
    )
    print(format_result(client.import_period(options)))
    return 0


def _run_import_file_command(client: BillsyncClient, args: argparse.Namespace) -> int:
    """Handle import-file command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = FileImportOptions(file_path=args.file, report_name=args.report_name)
    print(format_result(client.import_file(options)))
    return 0


def _report_failure(client: BillsyncClient, error: BillsyncError) -> int:
    """Print the partial summary and the error of an aborted import."""
    stats = _partial_stats(client, error)
    if stats is not None:
        print(
            f"aborted read={stats.read} loaded={stats.loaded} "
            f"warnings={stats.warnings} failed={stats.failed}"
        )
    if isinstance(error, BillingStorageError) and error.failed_record_ids:
        print(f"failed_record_ids={','.join(error.failed_record_ids)}")
    print(f"error={error}", file=sys.stderr)
    return 1


def _partial_stats(client: BillsyncClient, error: BillsyncError) -> ImportStats | None:
    if isinstance(error, BillingStorageError) and error.stats is not None:
        return error.stats
    return client.last_stats


def _add_import_command(subparsers: Any) -> None:
    """Register import subcommand."""
    parser = subparsers.add_parser("import", help="Import one billing month from S3")
    parser.add_argument("period", help="Billing month as YYYY-MM")
    parser.add_argument(
        "--bucket",
        required=True,
        help="Export bucket name or s3://bucket/prefix",
    )
    parser.add_argument(
        "--account-id",
        help="Payer account id; resolved from the caller identity when omitted",
    )


def _add_import_file_command(subparsers: Any) -> None:
    """Register import-file subcommand."""
    parser = subparsers.add_parser("import-file", help="Import a local export file")
    parser.add_argument("file", help="Local .csv or .csv.zip export")
    parser.add_argument("--report-name", help="Report name to record; defaults to the file name")
