"""access_governance.bulk_upload

Bulk access-grant upload pipeline.

    text / rows ─► parse ─► build_entity_cache ─► validate_rows
                                                     │
                         any error row? ── yes ──► failure result, no writes
                                │ no
                                ▼
                          insert_grants ─► success result

All-or-nothing: insertedCount is either 0 or len(validRows).  A store
failure during the insert is reported for the batch as a whole, never for a
row, since every row already passed validation.

Usage:
    from access_governance.bulk_upload import process_csv_upload
    from access_governance.directories import (
        PgGrantStore, PgSystemDirectory, PgUserDirectory,
    )

    result = process_csv_upload(
        csv_text, granted_by=admin_id,
        users=PgUserDirectory(conn),
        systems=PgSystemDirectory(conn),
        grants=PgGrantStore(conn),
    )
    payload = result.to_dict()
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from access_governance.csv_upload import CsvParseResult, parse_csv, parse_json_rows
from access_governance.directories import GrantStore, SystemDirectory, UserDirectory
from access_governance.entity_cache import build_entity_cache
from access_governance.records import (
    GRANT_STATUS_ACTIVE,
    BulkUploadResult,
    CreatedGrant,
    NewGrant,
    ValidRow,
)
from access_governance.row_validation import validate_rows
from access_governance.shared import BulkInsertError

NO_ROWS_MESSAGE = "No valid rows found in upload"
INSERT_FAILED_MESSAGE = "Insert failed: no records were inserted."


# ---------------------------------------------------------------------------
# Batch insert executor
# ---------------------------------------------------------------------------

def insert_grants(
    store: GrantStore,
    valid_rows: Sequence[ValidRow],
    granted_by: str,
    now: datetime | None = None,
) -> list[CreatedGrant]:
    """Insert one active grant per valid row in a single atomic batch.

    Every grant shares one granted_at, captured once for the batch.  Rows are
    trusted as validated; nothing is re-checked here.

    Raises:
        BulkInsertError: Propagated from the store; nothing was inserted.
    """
    if not valid_rows:
        return []
    granted_at = now or datetime.now(timezone.utc)
    new_grants = [
        NewGrant(
            user_id=row.resolved_data.user_id,
            system_id=row.resolved_data.system_id,
            instance_id=row.resolved_data.instance_id,
            tier_id=row.resolved_data.tier_id,
            status=GRANT_STATUS_ACTIVE,
            granted_by=granted_by,
            granted_at=granted_at,
            notes=row.resolved_data.notes,
        )
        for row in valid_rows
    ]
    return store.create_many(new_grants)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_upload(
    parsed: CsvParseResult,
    granted_by: str,
    users: UserDirectory,
    systems: SystemDirectory,
    grants: GrantStore,
    lookup_workers: int = 1,
    now: datetime | None = None,
) -> BulkUploadResult:
    """Validate parsed rows and insert them only if every row is clean."""
    if not parsed.rows:
        return BulkUploadResult(
            success=False,
            message=NO_ROWS_MESSAGE,
            total_rows=0,
            parse_errors=parsed.errors + parsed.warnings,
        )

    total = len(parsed.rows)
    cache = build_entity_cache(parsed.rows, users, systems, grants, lookup_workers)
    validation = validate_rows(parsed.rows, cache)

    if validation.error_rows:
        return BulkUploadResult(
            success=False,
            message=(
                f"Validation failed: {len(validation.error_rows)} row(s) have errors. "
                "No records were inserted."
            ),
            total_rows=total,
            valid_rows=validation.valid_rows,
            error_rows=validation.error_rows,
            parse_errors=parsed.errors + parsed.warnings,
        )

    try:
        created = insert_grants(grants, validation.valid_rows, granted_by, now)
    except BulkInsertError as exc:
        return BulkUploadResult(
            success=False,
            message=INSERT_FAILED_MESSAGE,
            total_rows=total,
            valid_rows=validation.valid_rows,
            parse_errors=parsed.errors + parsed.warnings,
            insert_error=str(exc),
        )

    return BulkUploadResult(
        success=True,
        message=f"Successfully created {len(created)} access grant(s)",
        total_rows=total,
        valid_rows=validation.valid_rows,
        created_grants=created,
        parse_errors=parsed.errors + parsed.warnings,
    )


def process_csv_upload(
    csv_text: str,
    granted_by: str,
    users: UserDirectory,
    systems: SystemDirectory,
    grants: GrantStore,
    lookup_workers: int = 1,
    now: datetime | None = None,
) -> BulkUploadResult:
    """Parse, validate and (if clean) insert a CSV upload."""
    return run_upload(
        parse_csv(csv_text), granted_by, users, systems, grants, lookup_workers, now
    )


def process_json_upload(
    payload: Any,
    granted_by: str,
    users: UserDirectory,
    systems: SystemDirectory,
    grants: GrantStore,
    lookup_workers: int = 1,
    now: datetime | None = None,
) -> BulkUploadResult:
    """Validate and (if clean) insert rows from a decoded JSON payload.

    Raises:
        UploadFormatError: If the payload is not an array of row objects.
    """
    return run_upload(
        parse_json_rows(payload), granted_by, users, systems, grants, lookup_workers, now
    )
