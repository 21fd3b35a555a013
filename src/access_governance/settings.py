"""access_governance.settings

Optional YAML settings for the bulk upload CLI.

Example (config/bulk_upload.yml):

    lookup_workers: 1
    granted_by: system-admin
    rejects_path: artifacts/rejects/bulk_upload_rejects.csv
    reports_dir: artifacts/reports

Every key is optional; unknown keys are rejected so that typos surface.
Command-line options override file values.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

ALLOWED_KEYS = frozenset({"lookup_workers", "granted_by", "rejects_path", "reports_dir"})

DEFAULT_REJECTS_PATH = "artifacts/rejects/bulk_upload_rejects.csv"
DEFAULT_REPORTS_DIR = "artifacts/reports"
DEFAULT_GRANTED_BY = "system-admin"


class SettingsValidationError(ValueError):
    """Raised when a settings file fails schema validation."""


@dataclass(frozen=True)
class UploadSettings:
    lookup_workers: int = 1
    granted_by: str = DEFAULT_GRANTED_BY
    rejects_path: Path = Path(DEFAULT_REJECTS_PATH)
    reports_dir: Path = Path(DEFAULT_REPORTS_DIR)


def validate_settings(data: Any) -> None:
    """Raise SettingsValidationError if data does not match the settings schema."""
    if data is None:
        return
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")

    unknown = set(data.keys()) - ALLOWED_KEYS
    if unknown:
        raise SettingsValidationError(f"Unknown settings keys: {sorted(unknown)}")

    if "lookup_workers" in data:
        workers = data["lookup_workers"]
        if isinstance(workers, bool) or not isinstance(workers, int):
            raise SettingsValidationError(
                f"lookup_workers value '{workers}' is not an integer."
            )
        if workers < 1:
            raise SettingsValidationError(f"lookup_workers value {workers} must be >= 1.")

    for key in ("granted_by", "rejects_path", "reports_dir"):
        if key in data and (not isinstance(data[key], str) or not data[key].strip()):
            raise SettingsValidationError(f"'{key}' must be a non-empty string.")


def load_settings(yaml_path: Path | None) -> UploadSettings:
    """Load, validate, and return UploadSettings; defaults when yaml_path is None.

    Raises:
        SettingsValidationError: If any key is unknown or has an invalid value.
        FileNotFoundError: If the YAML file does not exist.
    """
    if yaml_path is None:
        return UploadSettings()
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    validate_settings(data)
    data = data or {}
    return UploadSettings(
        lookup_workers=int(data.get("lookup_workers", 1)),
        granted_by=str(data.get("granted_by", DEFAULT_GRANTED_BY)).strip(),
        rejects_path=Path(data.get("rejects_path", DEFAULT_REJECTS_PATH)),
        reports_dir=Path(data.get("reports_dir", DEFAULT_REPORTS_DIR)),
    )
