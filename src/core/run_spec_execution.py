"""Shared run-spec execution engine for CLI and SDK workflows.

This module maps validated run-spec imports to client operations so
different entry points run one declarative import list without drift.
"""

from __future__ import annotations

from typing import Iterator, Protocol

from core.run_spec import FileImportStep, PeriodImportStep, RunSpec, RunSpecStep, load_run_spec
from core.types import FileImportOptions, ImportOptions, ImportResult


class RunSpecClient(Protocol):
    """Client API contract required by run-spec execution."""

    def import_period(self, options: ImportOptions) -> ImportResult: ...

    def import_file(self, options: FileImportOptions) -> ImportResult: ...


def execute_run_spec_file(client: RunSpecClient, spec_file: str) -> Iterator[ImportResult]:
    """Load a run-spec file eagerly and execute its imports lazily, in order."""
    spec = load_run_spec(spec_file)
    return execute_run_spec(client, spec)


def execute_run_spec(client: RunSpecClient, spec: RunSpec) -> Iterator[ImportResult]:
    """Execute a parsed run-spec in order, yielding each result as it completes.

    The first failing import stops execution and its error propagates.
    """
    for step in spec.imports:
        yield _execute_step(client, step)


def _execute_step(client: RunSpecClient, step: RunSpecStep) -> ImportResult:
    if isinstance(step, FileImportStep):
        return client.import_file(
            FileImportOptions(file_path=step.file, report_name=step.report_name)
        )
    if isinstance(step, PeriodImportStep):
        return client.import_period(
            ImportOptions(
                period=step.period,
                bucket=step.bucket,
                account_id=step.account_id,
                key_prefix=step.key_prefix,
            )
        )
    raise TypeError(f"Unsupported run-spec step {type(step).__name__}.")


def format_result(result: ImportResult) -> str:
    """Render one import result as a printable summary line."""
    stats = result.stats
    return (
        f"{result.source_name} state={result.state.value} imported={result.imported} "
        f"report_written={result.report_written} read={stats.read} loaded={stats.loaded} "
        f"warnings={stats.warnings} failed={stats.failed}"
    )
