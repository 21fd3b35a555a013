"""access_governance.cli

CLI entrypoint for bulk access-grant uploads.

Modes (--mode):
  csv_upload   validate a CSV file and insert every grant if all rows pass
  json_upload  same, from a JSON array of row objects
  template     print (or write) the CSV upload template

Usage (csv_upload):
    python -m access_governance.cli \\
        --mode csv_upload \\
        --db-dsn "$ACCESS_DB_DSN" \\
        --csv-path "uploads/q3_grants.csv" \\
        --granted-by "3f1c...-admin-user-id" \\
        --output-path "artifacts/responses/q3_grants.json"

Usage (template):
    python -m access_governance.cli --mode template --output-path access_grants_template.csv

Exit status is 0 only when every row was valid and the batch committed (or,
with --dry-run, would have been committed).
"""

from __future__ import annotations

import json
import sys
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from access_governance.bulk_upload import run_upload
from access_governance.csv_upload import (
    CsvParseResult,
    UploadFormatError,
    csv_template,
    parse_csv,
    parse_json_rows,
)
from access_governance.directories import PgGrantStore, PgSystemDirectory, PgUserDirectory
from access_governance.records import BulkUploadResult
from access_governance.settings import SettingsValidationError, UploadSettings, load_settings
from access_governance.shared import RejectWriter, RunCounters, write_run_report


# ---------------------------------------------------------------------------
# Input loading
# ---------------------------------------------------------------------------

def _load_csv(csv_path: Path, run_id: str) -> CsvParseResult:
    if csv_path.suffix.lower() != ".csv":
        click.echo(
            f"[{run_id}] FATAL: {csv_path.name} must be a CSV file (.csv extension)",
            err=True,
        )
        sys.exit(1)
    if not csv_path.exists():
        click.echo(f"[{run_id}] FATAL: {csv_path} does not exist", err=True)
        sys.exit(1)
    return parse_csv(csv_path.read_text(encoding="utf-8-sig"))


def _load_json(json_path: Path, run_id: str) -> CsvParseResult:
    if not json_path.exists():
        click.echo(f"[{run_id}] FATAL: {json_path} does not exist", err=True)
        sys.exit(1)
    try:
        payload = json.loads(json_path.read_text(encoding="utf-8"))
        return parse_json_rows(payload)
    except json.JSONDecodeError as exc:
        click.echo(f"[{run_id}] FATAL: {json_path.name} is not valid JSON: {exc}", err=True)
        sys.exit(1)
    except UploadFormatError as exc:
        click.echo(f"[{run_id}] FATAL: {json_path.name}: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Result reporting
# ---------------------------------------------------------------------------

def _record_result(
    result: BulkUploadResult,
    counters: RunCounters,
    rejects: RejectWriter,
) -> None:
    counters.rows_read = result.total_rows
    counters.rows_valid = len(result.valid_rows)
    counters.rows_rejected = len(result.error_rows)
    counters.grants_inserted = result.inserted_count
    for message in result.parse_errors:
        if message.startswith("Warning:"):
            counters.warnings.append(message)
        else:
            counters.parse_errors.append(message)
    if result.insert_error is not None:
        counters.db_phase_errors += 1
    for error_row in result.error_rows:
        rejects.write(error_row)


# ---------------------------------------------------------------------------
# Upload run
# ---------------------------------------------------------------------------

def _run_upload(
    run_id: str,
    db_dsn: str,
    parsed: CsvParseResult,
    granted_by: str,
    settings: UploadSettings,
    counters: RunCounters,
    rejects: RejectWriter,
    dry_run: bool,
) -> BulkUploadResult:
    """Run one upload inside a single transaction; commit only on success."""
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        try:
            result = run_upload(
                parsed,
                granted_by,
                users=PgUserDirectory(conn),
                systems=PgSystemDirectory(conn),
                grants=PgGrantStore(conn),
                lookup_workers=settings.lookup_workers,
            )
        except psycopg.Error as exc:
            conn.rollback()
            click.echo(
                f"[{run_id}] FATAL: unexpected error during DB phase: {exc}",
                err=True,
            )
            sys.exit(1)

        if dry_run or not result.success:
            conn.rollback()
            if dry_run:
                click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            conn.commit()
    finally:
        conn.close()

    _record_result(result, counters, rejects)
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="csv_upload",
    type=click.Choice(["csv_upload", "json_upload", "template"]),
    show_default=True,
)
@click.option("--db-dsn", default=None, envvar="ACCESS_DB_DSN", help="PostgreSQL DSN (or $ACCESS_DB_DSN)")
@click.option("--csv-path", default=None, type=click.Path(), help="[csv_upload] Input CSV")
@click.option("--json-path", default=None, type=click.Path(), help="[json_upload] Input JSON array of rows")
@click.option("--granted-by", default=None, help="Id of the authenticated admin recorded on every grant")
@click.option("--config-path", default=None, type=click.Path(), help="YAML settings file")
@click.option("--lookup-workers", default=None, type=click.IntRange(min=1), help="Parallel directory lookups per phase")
@click.option("--rejects-path", default=None, type=click.Path(), help="CSV of rejected rows")
@click.option("--output-path", default=None, type=click.Path(), help="Write the upload response (or template) here")
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def main(
    mode: str,
    db_dsn: str | None,
    csv_path: str | None,
    json_path: str | None,
    granted_by: str | None,
    config_path: str | None,
    lookup_workers: int | None,
    rejects_path: str | None,
    output_path: str | None,
    dry_run: bool,
    run_id: str | None,
) -> None:
    """Bulk access-grant upload CLI."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    if mode == "template":
        template = csv_template()
        if output_path:
            Path(output_path).write_text(template, encoding="utf-8")
            click.echo(f"[{run_id}] Template written: {output_path}")
        else:
            click.echo(template, nl=False)
        return

    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except (SettingsValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid settings: {exc}", err=True)
        sys.exit(1)
    if lookup_workers is not None:
        settings = replace(settings, lookup_workers=lookup_workers)
    actor = granted_by or settings.granted_by

    if mode == "csv_upload":
        if not csv_path:
            click.echo(f"[{run_id}] FATAL: --csv-path is required for csv_upload", err=True)
            sys.exit(1)
        parsed = _load_csv(Path(csv_path), run_id)
        source_paths = {"csv_path": csv_path}
    else:
        if not json_path:
            click.echo(f"[{run_id}] FATAL: --json-path is required for json_upload", err=True)
            sys.exit(1)
        parsed = _load_json(Path(json_path), run_id)
        source_paths = {"json_path": json_path}

    if not db_dsn:
        click.echo(f"[{run_id}] FATAL: --db-dsn or ACCESS_DB_DSN is required", err=True)
        sys.exit(1)

    counters = RunCounters()
    rejects = RejectWriter(Path(rejects_path) if rejects_path else settings.rejects_path)

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run}, granted_by={actor})")

    try:
        result = _run_upload(
            run_id, db_dsn, parsed, actor, settings, counters, rejects, dry_run,
        )
    finally:
        rejects.close()

    if output_path:
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(result.to_dict(), indent=2, default=str))
        click.echo(f"[{run_id}] Response: {out}")

    report_path = write_run_report(
        run_id, started_at, mode, dry_run, source_paths, counters,
        reports_dir=settings.reports_dir,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    click.echo(
        f"[{run_id}] {result.message} "
        f"({counters.rows_read} rows read, {counters.rows_valid} valid, "
        f"{counters.rows_rejected} rejected, {counters.grants_inserted} inserted)"
    )
    for message in counters.parse_errors:
        click.echo(f"[{run_id}] {message}", err=True)
    if result.error_rows:
        click.echo(f"[{run_id}] Rejected rows written to {rejects.path}", err=True)
    if result.insert_error is not None:
        click.echo(f"[{run_id}] FATAL: batch insert failed: {result.insert_error}", err=True)
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
