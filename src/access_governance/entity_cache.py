"""access_governance.entity_cache

Batched resolution of every name and email referenced by an upload.

Instead of one directory round trip per row, distinct lower-cased values are
collected across the whole upload and each is looked up once:

  phase 1  users by email, systems by name          (independent)
  phase 2  tiers / instances by (system_id, name)   (needs phase 1 systems)
  phase 3  one batch query for existing active grants over every row whose
           user, system and tier all resolved

Lookups within a phase may run on a thread pool (lookup_workers > 1).  Every
phase completes before the next starts, and the cache is complete before
row validation begins.

Tier and instance names are scoped to their system: "Admin" under System A
and "Admin" under System B are unrelated keys.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TypeVar

from access_governance.directories import GrantStore, SystemDirectory, UserDirectory
from access_governance.normalize import lookup_key, normalize_email
from access_governance.records import (
    GrantKey,
    ResolvedInstance,
    ResolvedSystem,
    ResolvedTier,
    ResolvedUser,
    UploadRow,
)

K = TypeVar("K")
V = TypeVar("V")

# (system_id, lower-cased name)
ScopedName = tuple[str, str]


@dataclass
class EntityCache:
    users_by_email: dict[str, ResolvedUser] = field(default_factory=dict)
    systems_by_name: dict[str, ResolvedSystem] = field(default_factory=dict)
    tiers_by_system_and_name: dict[ScopedName, ResolvedTier] = field(default_factory=dict)
    instances_by_system_and_name: dict[ScopedName, ResolvedInstance] = field(
        default_factory=dict
    )
    existing_active_grants: set[GrantKey] = field(default_factory=set)

    # -- row-level accessors -------------------------------------------------

    def user_for(self, email: str | None) -> ResolvedUser | None:
        key = normalize_email(email)
        return self.users_by_email.get(key) if key else None

    def system_for(self, name: str | None) -> ResolvedSystem | None:
        key = lookup_key(name)
        return self.systems_by_name.get(key) if key else None

    def tier_for(self, system: ResolvedSystem, name: str | None) -> ResolvedTier | None:
        key = lookup_key(name)
        return self.tiers_by_system_and_name.get((system.id, key)) if key else None

    def instance_for(
        self, system: ResolvedSystem, name: str | None
    ) -> ResolvedInstance | None:
        key = lookup_key(name)
        return self.instances_by_system_and_name.get((system.id, key)) if key else None


# ---------------------------------------------------------------------------
# Lookup fan-out
# ---------------------------------------------------------------------------

def _lookup_all(
    keys: Iterable[K],
    lookup: Callable[[K], V | None],
    workers: int,
) -> dict[K, V]:
    """Run `lookup` once per key; keep the hits.  Keys keep first-seen order."""
    ordered = list(dict.fromkeys(keys))
    if workers > 1 and len(ordered) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(ordered))) as pool:
            found = list(pool.map(lookup, ordered))
    else:
        found = [lookup(k) for k in ordered]
    return {k: v for k, v in zip(ordered, found) if v is not None}


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_entity_cache(
    rows: Sequence[UploadRow],
    users: UserDirectory,
    systems: SystemDirectory,
    grants: GrantStore,
    lookup_workers: int = 1,
) -> EntityCache:
    """Resolve every distinct reference in `rows` into an EntityCache.

    Rows are read raw (before schema validation); blank values are skipped.
    Directory errors propagate to the caller.
    """
    emails: list[str] = []
    system_names: list[str] = []
    tier_names: dict[str, list[str]] = {}
    instance_names: dict[str, list[str]] = {}

    for row in rows:
        email = normalize_email(row.user_email)
        if email:
            emails.append(email)
        sys_name = lookup_key(row.system_name)
        if not sys_name:
            continue
        system_names.append(sys_name)
        tier_name = lookup_key(row.access_tier_name)
        if tier_name:
            tier_names.setdefault(sys_name, []).append(tier_name)
        inst_name = lookup_key(row.instance_name)
        if inst_name:
            instance_names.setdefault(sys_name, []).append(inst_name)

    cache = EntityCache()

    # Phase 1: users, systems
    cache.users_by_email = _lookup_all(emails, users.find_by_email, lookup_workers)
    cache.systems_by_name = _lookup_all(system_names, systems.find_by_name, lookup_workers)

    # Phase 2: tiers, instances scoped to each resolved system
    tier_keys: list[ScopedName] = []
    for sys_name, names in tier_names.items():
        system = cache.systems_by_name.get(sys_name)
        if system is not None:
            tier_keys.extend((system.id, n) for n in names)
    cache.tiers_by_system_and_name = _lookup_all(
        tier_keys, lambda k: systems.find_tier_by_name(k[0], k[1]), lookup_workers
    )

    instance_keys: list[ScopedName] = []
    for sys_name, names in instance_names.items():
        system = cache.systems_by_name.get(sys_name)
        if system is not None:
            instance_keys.extend((system.id, n) for n in names)
    cache.instances_by_system_and_name = _lookup_all(
        instance_keys, lambda k: systems.find_instance_by_name(k[0], k[1]), lookup_workers
    )

    # Phase 3: existing active grants, one batch query
    candidates: list[GrantKey] = []
    for row in rows:
        user = cache.user_for(row.user_email)
        system = cache.system_for(row.system_name)
        if user is None or system is None:
            continue
        tier = cache.tier_for(system, row.access_tier_name)
        if tier is None:
            continue
        instance = cache.instance_for(system, row.instance_name)
        if lookup_key(row.instance_name) and instance is None:
            continue
        candidates.append(
            GrantKey(user.id, system.id, tier.id, instance.id if instance else None)
        )

    candidates = list(dict.fromkeys(candidates))
    if candidates:
        cache.existing_active_grants = set(
            grants.check_existing_active_grants_batch(candidates)
        )
    return cache
