"""Normalization functions for bulk grant uploads.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_email
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address."""
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 3: lookup_key  (case-insensitive directory matching)
# ---------------------------------------------------------------------------

def lookup_key(value: str | None) -> str | None:
    """Lowercase and trim a system / tier / instance name for matching.

    Internal whitespace is kept as-is: "Prod  EU" and "Prod EU" are
    different names in the directory.
    """
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: is_valid_email
# ---------------------------------------------------------------------------

def is_valid_email(value: str | None) -> bool:
    """Return True if the trimmed value has the shape local@domain.tld."""
    v = trim(value)
    if v is None:
        return False
    return _EMAIL_RE.match(v) is not None
