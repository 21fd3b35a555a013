"""access_governance.shared

Run plumbing shared by the CSV and JSON upload modes.
Includes the batch exception type, RejectWriter, RunCounters and
report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from access_governance.records import ErrorRow


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class BulkInsertError(Exception):
    """Raised when the grant store fails to commit a batch; nothing was inserted."""


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

REJECT_FIELDNAMES = [
    "row_number", "user_email", "system_name", "instance_name",
    "access_tier_name", "notes", "_reject_reason",
]


class RejectWriter:
    """Lazy-open CSV writer for rejected upload rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    @property
    def path(self) -> Path:
        return self._path

    def write(self, error_row: ErrorRow) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(
                self._fh, fieldnames=REJECT_FIELDNAMES, extrasaction="ignore"
            )
            self._writer.writeheader()
        row = error_row.row_data
        self._writer.writerow({
            "row_number": error_row.row_number,
            "user_email": row.user_email,
            "system_name": row.system_name,
            "instance_name": row.instance_name or "",
            "access_tier_name": row.access_tier_name,
            "notes": row.notes or "",
            "_reject_reason": "; ".join(error_row.errors),
        })
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    rows_read: int = 0
    rows_valid: int = 0
    rows_rejected: int = 0
    grants_inserted: int = 0
    db_phase_errors: int = 0
    parse_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_valid": self.rows_valid,
            "rows_rejected": self.rows_rejected,
            "grants_inserted": self.grants_inserted,
            "db_phase_errors": self.db_phase_errors,
            "parse_errors": self.parse_errors,
            "warnings": self.warnings[:50],
        }


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: RunCounters,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
