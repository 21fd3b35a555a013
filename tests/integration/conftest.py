"""Integration test fixtures.

Applies the access governance migration against an ephemeral PostgreSQL
database provided by pytest-postgresql, and seeds a small directory of users,
systems, tiers and instances.
"""

from __future__ import annotations

from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_access_governance.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (connection, dsn) with the schema applied.

    Function scope: every test starts from an empty schema.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def _insert(conn: psycopg.Connection, sql: str, params: tuple) -> str:
    return str(conn.execute(sql + " RETURNING id", params).fetchone()[0])


@pytest.fixture
def seeded(db_conn):
    """Seed the directory and return {name: id}.

    Users: alice@example.com, bob@example.com
    GitHub: tiers Admin, Read; instances Production, Staging
    Salesforce: tiers Viewer, Admin; instance Production
    """
    conn, _ = db_conn
    ids: dict[str, str] = {}
    ids["alice"] = _insert(
        conn, "INSERT INTO app_user (name, email) VALUES (%s, %s)",
        ("Alice Smith", "alice@example.com"),
    )
    ids["bob"] = _insert(
        conn, "INSERT INTO app_user (name, email) VALUES (%s, %s)",
        ("Bob Jones", "Bob@Example.com"),
    )
    for system in ("GitHub", "Salesforce"):
        ids[system] = _insert(conn, "INSERT INTO system (name) VALUES (%s)", (system,))
    for system, tier in (("GitHub", "Admin"), ("GitHub", "Read"),
                         ("Salesforce", "Viewer"), ("Salesforce", "Admin")):
        ids[f"{system}/{tier}"] = _insert(
            conn, "INSERT INTO access_tier (system_id, name) VALUES (%s, %s)",
            (ids[system], tier),
        )
    for system, instance in (("GitHub", "Production"), ("GitHub", "Staging"),
                             ("Salesforce", "Production")):
        ids[f"{system}@{instance}"] = _insert(
            conn, "INSERT INTO system_instance (system_id, name) VALUES (%s, %s)",
            (ids[system], instance),
        )
    return ids
