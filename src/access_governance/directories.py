"""access_governance.directories

Collaborators the bulk upload pipeline reads from and writes to.

Protocols:
  - UserDirectory    : user lookup by email
  - SystemDirectory  : system lookup by name; tier / instance lookup by name
                       scoped to one system
  - GrantStore       : batch active-grant existence check, atomic batch insert

PostgreSQL implementations run on a caller-owned psycopg connection; the
caller manages commit / rollback of the surrounding transaction.  All name
and email matching is case-insensitive (lower() on both sides).
"""

from __future__ import annotations

from typing import Protocol, Sequence

import psycopg

from access_governance.records import (
    CreatedGrant,
    GrantKey,
    NewGrant,
    ResolvedInstance,
    ResolvedSystem,
    ResolvedTier,
    ResolvedUser,
)
from access_governance.shared import BulkInsertError

# Rows per INSERT statement.  Every page runs inside the same transaction.
INSERT_PAGE_SIZE = 1000


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class UserDirectory(Protocol):
    def find_by_email(self, email: str) -> ResolvedUser | None: ...


class SystemDirectory(Protocol):
    def find_by_name(self, name: str) -> ResolvedSystem | None: ...

    def find_tier_by_name(self, system_id: str, name: str) -> ResolvedTier | None: ...

    def find_instance_by_name(
        self, system_id: str, name: str
    ) -> ResolvedInstance | None: ...


class GrantStore(Protocol):
    def check_existing_active_grants_batch(
        self, keys: Sequence[GrantKey]
    ) -> list[GrantKey]: ...

    def create_many(self, grants: Sequence[NewGrant]) -> list[CreatedGrant]: ...


# ---------------------------------------------------------------------------
# PostgreSQL: users
# ---------------------------------------------------------------------------

class PgUserDirectory:
    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def find_by_email(self, email: str) -> ResolvedUser | None:
        row = self._conn.execute(
            """
            SELECT id, name, email FROM app_user
            WHERE lower(email) = lower(%s)
            ORDER BY id ASC LIMIT 1
            """,
            (email,),
        ).fetchone()
        if row is None:
            return None
        return ResolvedUser(id=str(row[0]), name=row[1], email=row[2])


# ---------------------------------------------------------------------------
# PostgreSQL: systems, tiers, instances
# ---------------------------------------------------------------------------

class PgSystemDirectory:
    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def find_by_name(self, name: str) -> ResolvedSystem | None:
        row = self._conn.execute(
            """
            SELECT id, name FROM system
            WHERE lower(name) = lower(%s)
            ORDER BY id ASC LIMIT 1
            """,
            (name,),
        ).fetchone()
        if row is None:
            return None
        return ResolvedSystem(id=str(row[0]), name=row[1])

    def find_tier_by_name(self, system_id: str, name: str) -> ResolvedTier | None:
        row = self._conn.execute(
            """
            SELECT id, name, system_id FROM access_tier
            WHERE system_id = %s AND lower(name) = lower(%s)
            ORDER BY id ASC LIMIT 1
            """,
            (system_id, name),
        ).fetchone()
        if row is None:
            return None
        return ResolvedTier(id=str(row[0]), name=row[1], system_id=str(row[2]))

    def find_instance_by_name(
        self, system_id: str, name: str
    ) -> ResolvedInstance | None:
        row = self._conn.execute(
            """
            SELECT id, name, system_id FROM system_instance
            WHERE system_id = %s AND lower(name) = lower(%s)
            ORDER BY id ASC LIMIT 1
            """,
            (system_id, name),
        ).fetchone()
        if row is None:
            return None
        return ResolvedInstance(id=str(row[0]), name=row[1], system_id=str(row[2]))


# ---------------------------------------------------------------------------
# PostgreSQL: access grants
# ---------------------------------------------------------------------------

_INSERT_COLUMNS = (
    "user_id, system_id, instance_id, tier_id, status, granted_by, granted_at, notes"
)

_HYDRATE_SQL = """
    SELECT g.id, g.user_id, g.system_id, g.instance_id, g.tier_id,
           g.status, g.granted_by, g.granted_at, g.notes,
           u.name, u.email, s.name, t.name, i.name
    FROM access_grant g
    JOIN app_user u ON u.id = g.user_id
    JOIN system s ON s.id = g.system_id
    JOIN access_tier t ON t.id = g.tier_id
    LEFT JOIN system_instance i ON i.id = g.instance_id
    WHERE g.id = ANY(%s::uuid[])
"""


def _opt_str(value: object) -> str | None:
    return str(value) if value is not None else None


class PgGrantStore:
    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def check_existing_active_grants_batch(
        self, keys: Sequence[GrantKey]
    ) -> list[GrantKey]:
        """Return the subset of keys that already have an active grant.

        One round trip regardless of len(keys).  instance_id=None only
        matches grants that are themselves for all instances.
        """
        if not keys:
            return []
        rows = self._conn.execute(
            """
            SELECT DISTINCT g.user_id, g.system_id, g.tier_id, g.instance_id
            FROM access_grant g
            JOIN unnest(%s::uuid[], %s::uuid[], %s::uuid[], %s::uuid[])
                AS c(user_id, system_id, tier_id, instance_id)
              ON g.user_id = c.user_id
             AND g.system_id = c.system_id
             AND g.tier_id = c.tier_id
             AND g.instance_id IS NOT DISTINCT FROM c.instance_id
            WHERE g.status = 'active'
            """,
            (
                [k.user_id for k in keys],
                [k.system_id for k in keys],
                [k.tier_id for k in keys],
                [k.instance_id for k in keys],
            ),
        ).fetchall()
        return [
            GrantKey(str(r[0]), str(r[1]), str(r[2]), _opt_str(r[3]))
            for r in rows
        ]

    def create_many(self, grants: Sequence[NewGrant]) -> list[CreatedGrant]:
        """Insert every grant in one transaction and return them hydrated.

        Raises:
            BulkInsertError: If any statement fails.  The transaction block is
                rolled back, so no grant from this batch persists.
        """
        if not grants:
            return []
        try:
            with self._conn.transaction():
                ids: list[str] = []
                for start in range(0, len(grants), INSERT_PAGE_SIZE):
                    ids.extend(self._insert_page(grants[start:start + INSERT_PAGE_SIZE]))
                created = self._hydrate(ids)
        except psycopg.Error as exc:
            raise BulkInsertError(f"{type(exc).__name__}: {exc}") from exc
        return created

    def _insert_page(self, page: Sequence[NewGrant]) -> list[str]:
        placeholders = ", ".join(["(%s, %s, %s, %s, %s, %s, %s, %s)"] * len(page))
        params: list[object] = []
        for g in page:
            params.extend([
                g.user_id, g.system_id, g.instance_id, g.tier_id,
                g.status, g.granted_by, g.granted_at, g.notes,
            ])
        rows = self._conn.execute(
            f"INSERT INTO access_grant ({_INSERT_COLUMNS}) VALUES {placeholders} RETURNING id",
            params,
        ).fetchall()
        return [str(r[0]) for r in rows]

    def _hydrate(self, ids: list[str]) -> list[CreatedGrant]:
        rows = self._conn.execute(_HYDRATE_SQL, (ids,)).fetchall()
        by_id: dict[str, CreatedGrant] = {}
        for r in rows:
            grant_id, user_id, system_id = str(r[0]), str(r[1]), str(r[2])
            instance_id, tier_id = _opt_str(r[3]), str(r[4])
            by_id[grant_id] = CreatedGrant(
                id=grant_id,
                user_id=user_id,
                system_id=system_id,
                instance_id=instance_id,
                tier_id=tier_id,
                status=r[5],
                granted_by=r[6],
                granted_at=r[7],
                notes=r[8],
                user=ResolvedUser(id=user_id, name=r[9], email=r[10]),
                system=ResolvedSystem(id=system_id, name=r[11]),
                tier=ResolvedTier(id=tier_id, name=r[12], system_id=system_id),
                instance=(
                    ResolvedInstance(id=instance_id, name=r[13], system_id=system_id)
                    if instance_id is not None
                    else None
                ),
            )
        return [by_id[i] for i in ids]
