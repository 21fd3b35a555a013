"""Unit test fixtures.

An in-memory directory standing in for the PostgreSQL user / system / grant
tables, so pipeline tests run without a database.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Sequence

import pytest

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


class FakeDirectory:
    """Implements UserDirectory, SystemDirectory and GrantStore in memory."""

    def __init__(self) -> None:
        self.users: dict[str, ResolvedUser] = {}
        self.systems: dict[str, ResolvedSystem] = {}
        self.tiers: dict[tuple[str, str], ResolvedTier] = {}
        self.instances: dict[tuple[str, str], ResolvedInstance] = {}
        self.active_grants: set[GrantKey] = set()
        self.created: list[CreatedGrant] = []
        self.calls: Counter = Counter()
        self.batch_calls: list[list[GrantKey]] = []
        self.fail_insert: str | None = None
        self._lock = threading.Lock()
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    # -- seeding ---------------------------------------------------------------

    def add_user(self, email: str, name: str = "Test User") -> ResolvedUser:
        user = ResolvedUser(id=self._next_id("user"), name=name, email=email)
        self.users[email.lower()] = user
        return user

    def add_system(self, name: str) -> ResolvedSystem:
        system = ResolvedSystem(id=self._next_id("system"), name=name)
        self.systems[name.lower()] = system
        return system

    def add_tier(self, system: ResolvedSystem, name: str) -> ResolvedTier:
        tier = ResolvedTier(id=self._next_id("tier"), name=name, system_id=system.id)
        self.tiers[(system.id, name.lower())] = tier
        return tier

    def add_instance(self, system: ResolvedSystem, name: str) -> ResolvedInstance:
        instance = ResolvedInstance(
            id=self._next_id("instance"), name=name, system_id=system.id
        )
        self.instances[(system.id, name.lower())] = instance
        return instance

    def add_active_grant(self, user, system, tier, instance=None) -> GrantKey:
        key = GrantKey(user.id, system.id, tier.id, instance.id if instance else None)
        self.active_grants.add(key)
        return key

    # -- UserDirectory -----------------------------------------------------------

    def find_by_email(self, email: str) -> ResolvedUser | None:
        with self._lock:
            self.calls["find_by_email"] += 1
        return self.users.get(email.lower())

    # -- SystemDirectory ---------------------------------------------------------

    def find_by_name(self, name: str) -> ResolvedSystem | None:
        with self._lock:
            self.calls["find_by_name"] += 1
        return self.systems.get(name.lower())

    def find_tier_by_name(self, system_id: str, name: str) -> ResolvedTier | None:
        with self._lock:
            self.calls["find_tier_by_name"] += 1
        return self.tiers.get((system_id, name.lower()))

    def find_instance_by_name(self, system_id: str, name: str) -> ResolvedInstance | None:
        with self._lock:
            self.calls["find_instance_by_name"] += 1
        return self.instances.get((system_id, name.lower()))

    # -- GrantStore --------------------------------------------------------------

    def check_existing_active_grants_batch(
        self, keys: Sequence[GrantKey]
    ) -> list[GrantKey]:
        self.batch_calls.append(list(keys))
        return [k for k in keys if k in self.active_grants]

    def create_many(self, grants: Sequence[NewGrant]) -> list[CreatedGrant]:
        if self.fail_insert:
            raise BulkInsertError(self.fail_insert)
        users_by_id = {u.id: u for u in self.users.values()}
        systems_by_id = {s.id: s for s in self.systems.values()}
        tiers_by_id = {t.id: t for t in self.tiers.values()}
        instances_by_id = {i.id: i for i in self.instances.values()}
        created = []
        for g in grants:
            created.append(CreatedGrant(
                id=self._next_id("grant"),
                user_id=g.user_id,
                system_id=g.system_id,
                instance_id=g.instance_id,
                tier_id=g.tier_id,
                status=g.status,
                granted_by=g.granted_by,
                granted_at=g.granted_at,
                notes=g.notes,
                user=users_by_id[g.user_id],
                system=systems_by_id[g.system_id],
                tier=tiers_by_id[g.tier_id],
                instance=instances_by_id.get(g.instance_id) if g.instance_id else None,
            ))
        self.created.extend(created)
        for c in created:
            self.active_grants.add(GrantKey(c.user_id, c.system_id, c.tier_id, c.instance_id))
        return created


@pytest.fixture
def directory() -> FakeDirectory:
    """Seeded directory.

    Users: alice@example.com, bob@example.com
    GitHub: tiers Admin, Read; instances Production, Staging
    Salesforce: tier Viewer; instance Production
    """
    d = FakeDirectory()
    d.add_user("alice@example.com", "Alice Smith")
    d.add_user("bob@example.com", "Bob Jones")
    github = d.add_system("GitHub")
    d.add_tier(github, "Admin")
    d.add_tier(github, "Read")
    d.add_instance(github, "Production")
    d.add_instance(github, "Staging")
    salesforce = d.add_system("Salesforce")
    d.add_tier(salesforce, "Viewer")
    d.add_instance(salesforce, "Production")
    return d
