"""access_governance.row_validation

Turns UploadRows into ValidRows (with resolved ids) or ErrorRows (with every
applicable message).

Check order per row:
  1. Schema (row_schema.check_row_shape).  Failure stops here: the ErrorRow
     carries schema messages only.
  2. User by email.
  3. System by name.
  4. Tier by (system, name)      : only when the system resolved.
  5. Instance by (system, name)  : only when given and the system resolved.
  6. Duplicate within this upload: only when user, system and tier resolved.
     The first row with a key wins; later rows with the same key are flagged.
     The key is recorded on first sight even if the row fails for other
     reasons.
  7. Existing active grant       : only when user, system and tier resolved
     and no error has been recorded for the row yet.

Checks 2–7 all run; their messages accumulate on one ErrorRow.
"""

from __future__ import annotations

from collections.abc import Sequence

from access_governance.entity_cache import EntityCache
from access_governance.normalize import trim
from access_governance.records import (
    ErrorRow,
    GrantKey,
    ResolvedData,
    RowOutcome,
    UploadRow,
    ValidationResult,
    ValidRow,
)
from access_governance.row_schema import check_row_shape

DUPLICATE_IN_FILE_MESSAGE = (
    "Duplicate row: User already has a grant for this system/tier/instance in this file"
)


def _validate_row(
    row: UploadRow,
    cache: EntityCache,
    seen_keys: set[GrantKey],
) -> RowOutcome:
    """Validate one row.  Mutates `seen_keys` when the grant key is first seen."""
    schema_errors = check_row_shape(row)
    if schema_errors:
        return ErrorRow(row.row_number, row, tuple(schema_errors))

    errors: list[str] = []
    email = trim(row.user_email)
    system_name = trim(row.system_name)
    tier_name = trim(row.access_tier_name)
    instance_name = trim(row.instance_name)

    user = cache.user_for(email)
    if user is None:
        errors.append(f"Unknown user_email: {email}")

    system = cache.system_for(system_name)
    if system is None:
        errors.append(f"Unknown system_name: {system_name}")

    tier = None
    instance = None
    if system is not None:
        tier = cache.tier_for(system, tier_name)
        if tier is None:
            errors.append(
                f'Unknown access_tier_name "{tier_name}" for system "{system_name}"'
            )
        if instance_name:
            instance = cache.instance_for(system, instance_name)
            if instance is None:
                errors.append(
                    f'Instance "{instance_name}" does not belong to system "{system_name}"'
                )

    if user is None or system is None or tier is None:
        return ErrorRow(row.row_number, row, tuple(errors))

    key = GrantKey(user.id, system.id, tier.id, instance.id if instance else None)
    if key in seen_keys:
        errors.append(DUPLICATE_IN_FILE_MESSAGE)
    else:
        seen_keys.add(key)

    if not errors and key in cache.existing_active_grants:
        suffix = "/instance" if instance_name else ""
        errors.append(f"User already has an active grant for this system/tier{suffix}")

    if errors:
        return ErrorRow(row.row_number, row, tuple(errors))

    return ValidRow(
        row_number=row.row_number,
        row_data=row,
        resolved_data=ResolvedData(
            user_id=user.id,
            system_id=system.id,
            instance_id=instance.id if instance else None,
            tier_id=tier.id,
            notes=trim(row.notes),
        ),
    )


def validate_rows(rows: Sequence[UploadRow], cache: EntityCache) -> ValidationResult:
    """Validate every row against a fully built cache.

    Never stops early: each input row lands in exactly one of valid_rows /
    error_rows, both ordered by row_number.
    """
    result = ValidationResult()
    seen_keys: set[GrantKey] = set()
    for row in sorted(rows, key=lambda r: r.row_number):
        outcome = _validate_row(row, cache, seen_keys)
        if isinstance(outcome, ValidRow):
            result.valid_rows.append(outcome)
        else:
            result.error_rows.append(outcome)
    return result
