"""access_governance.records

Typed records that flow through the bulk upload pipeline.

Upload rows, valid rows and error rows live for the duration of one upload;
ResolvedUser / ResolvedSystem / ResolvedTier / ResolvedInstance mirror rows
owned by the directory; NewGrant / CreatedGrant are the write and read shapes
of the access_grant table.

`to_dict()` methods emit the camelCase shape consumed by the web layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NamedTuple, Union

GRANT_STATUS_ACTIVE = "active"
GRANT_STATUS_REMOVED = "removed"


# ---------------------------------------------------------------------------
# Upload row
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UploadRow:
    """One data row from a CSV file or JSON payload.

    Required text fields are kept as given ("" when missing) so that schema
    validation can report them; optional fields are None when absent.
    """

    row_number: int
    user_email: str
    system_name: str
    access_tier_name: str
    instance_name: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "user_email": self.user_email,
            "system_name": self.system_name,
            "access_tier_name": self.access_tier_name,
        }
        if self.instance_name is not None:
            out["instance_name"] = self.instance_name
        if self.notes is not None:
            out["notes"] = self.notes
        return out


# ---------------------------------------------------------------------------
# Resolved references
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedUser:
    id: str
    name: str
    email: str


@dataclass(frozen=True)
class ResolvedSystem:
    id: str
    name: str


@dataclass(frozen=True)
class ResolvedTier:
    id: str
    name: str
    system_id: str


@dataclass(frozen=True)
class ResolvedInstance:
    id: str
    name: str
    system_id: str


class GrantKey(NamedTuple):
    """Identity of an active grant; instance_id=None means all instances."""

    user_id: str
    system_id: str
    tier_id: str
    instance_id: str | None


# ---------------------------------------------------------------------------
# Validation outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedData:
    user_id: str
    system_id: str
    instance_id: str | None
    tier_id: str
    notes: str | None

    @property
    def grant_key(self) -> GrantKey:
        return GrantKey(self.user_id, self.system_id, self.tier_id, self.instance_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "systemId": self.system_id,
            "instanceId": self.instance_id,
            "tierId": self.tier_id,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ValidRow:
    row_number: int
    row_data: UploadRow
    resolved_data: ResolvedData

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "rowData": self.row_data.to_dict(),
            "resolvedData": self.resolved_data.to_dict(),
        }


@dataclass(frozen=True)
class ErrorRow:
    row_number: int
    row_data: UploadRow
    errors: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.errors:
            raise ValueError(f"ErrorRow {self.row_number} must carry at least one error")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "rowData": self.row_data.to_dict(),
            "errors": list(self.errors),
        }


RowOutcome = Union[ValidRow, ErrorRow]


@dataclass
class ValidationResult:
    valid_rows: list[ValidRow] = field(default_factory=list)
    error_rows: list[ErrorRow] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Access grants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NewGrant:
    """Insert shape for one access_grant row."""

    user_id: str
    system_id: str
    instance_id: str | None
    tier_id: str
    status: str
    granted_by: str
    granted_at: datetime
    notes: str | None


@dataclass(frozen=True)
class CreatedGrant:
    """An inserted access_grant row with related display names."""

    id: str
    user_id: str
    system_id: str
    instance_id: str | None
    tier_id: str
    status: str
    granted_by: str
    granted_at: datetime
    notes: str | None
    user: ResolvedUser
    system: ResolvedSystem
    tier: ResolvedTier
    instance: ResolvedInstance | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "systemId": self.system_id,
            "instanceId": self.instance_id,
            "tierId": self.tier_id,
            "status": self.status,
            "grantedBy": self.granted_by,
            "grantedAt": self.granted_at.isoformat(),
            "notes": self.notes,
            "user": {"id": self.user.id, "name": self.user.name, "email": self.user.email},
            "system": {"id": self.system.id, "name": self.system.name},
            "tier": {"id": self.tier.id, "name": self.tier.name},
            "instance": (
                {"id": self.instance.id, "name": self.instance.name}
                if self.instance is not None
                else None
            ),
        }


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------

@dataclass
class BulkUploadResult:
    success: bool
    message: str
    total_rows: int
    valid_rows: list[ValidRow] = field(default_factory=list)
    error_rows: list[ErrorRow] = field(default_factory=list)
    created_grants: list[CreatedGrant] | None = None
    parse_errors: list[str] = field(default_factory=list)
    insert_error: str | None = None

    @property
    def inserted_count(self) -> int:
        return len(self.created_grants) if self.created_grants else 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "summary": {
                "totalRows": self.total_rows,
                "validRows": len(self.valid_rows),
                "errorRows": len(self.error_rows),
                "insertedCount": self.inserted_count,
            },
            "validRows": [r.to_dict() for r in self.valid_rows],
            "errorRows": [r.to_dict() for r in self.error_rows],
        }
        if self.success and self.created_grants is not None:
            out["createdGrants"] = [g.to_dict() for g in self.created_grants]
        if self.parse_errors:
            out["parseErrors"] = list(self.parse_errors)
        if self.insert_error is not None:
            out["insertError"] = self.insert_error
        return out
