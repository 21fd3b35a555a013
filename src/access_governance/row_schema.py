"""access_governance.row_schema

Per-row shape checks applied before any directory lookup.

Messages are formatted "<field>: <message>", one per failed field, in column
order.  A row with any schema message is rejected without entity resolution.
"""

from __future__ import annotations

from access_governance.csv_upload import REQUIRED_COLUMNS
from access_governance.normalize import is_valid_email, trim
from access_governance.records import UploadRow

REQUIRED_MESSAGE = "Required"
INVALID_EMAIL_MESSAGE = "Invalid email"


def check_row_shape(row: UploadRow) -> list[str]:
    """Return schema messages for `row`; an empty list means the shape is valid."""
    errors: list[str] = []
    for column in REQUIRED_COLUMNS:
        value = trim(getattr(row, column))
        if value is None:
            errors.append(f"{column}: {REQUIRED_MESSAGE}")
        elif column == "user_email" and not is_valid_email(value):
            errors.append(f"{column}: {INVALID_EMAIL_MESSAGE}")
    return errors
