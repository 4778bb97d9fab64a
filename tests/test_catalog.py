"""
Tests for vetguard.catalog -- cached role catalog with template fallback.

Covers: practice scoping, memoization within the TTL, refresh after
expiry, invalidation, stale-cache and template fallback on store failure,
and lookup precedence (dynamic over template).
"""

from __future__ import annotations

from vetguard.catalog import RoleCatalog
from vetguard.models import Permission, Role
from vetguard.stores import InMemoryRoleStore, StoreUnavailableError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingStore(InMemoryRoleStore):
    """In-memory store that counts reads and can be switched off."""

    def __init__(self, roles=None) -> None:
        super().__init__(roles)
        self.calls = 0
        self.fail = False

    def get_roles(self, practice_id):
        self.calls += 1
        if self.fail:
            raise StoreUnavailableError("database unreachable")
        return super().get_roles(practice_id)


def _make_custom_role(role_id: str = "custom_kennel", practice_id: int = 1) -> Role:
    return Role(
        id=role_id,
        name="KENNEL_STAFF",
        practice_id=practice_id,
        permissions=[Permission(resource="pets", action="READ")],
    )


def _make_system_role() -> Role:
    # A database copy of a system role that differs from the template.
    return Role(
        id="cashier",
        name="CASHIER",
        is_system_defined=True,
        permissions=[Permission(resource="payments", action="CREATE", granted=False)],
    )


# ---------------------------------------------------------------------------
# 1. Scoping
# ---------------------------------------------------------------------------

class TestScoping:
    def test_system_only_without_practice(self):
        catalog = RoleCatalog(InMemoryRoleStore([_make_system_role(), _make_custom_role()]))
        assert [r.id for r in catalog.get_roles()] == ["cashier"]

    def test_practice_roles_included(self):
        store = InMemoryRoleStore([
            _make_system_role(),
            _make_custom_role("custom_a", practice_id=1),
            _make_custom_role("custom_b", practice_id=2),
        ])
        catalog = RoleCatalog(store)
        assert sorted(r.id for r in catalog.get_roles(1)) == ["cashier", "custom_a"]

    def test_no_store_returns_empty(self):
        catalog = RoleCatalog(None)
        assert catalog.get_roles(1) == []
        assert catalog.get_role("CLIENT").name == "CLIENT"


# ---------------------------------------------------------------------------
# 2. Caching
# ---------------------------------------------------------------------------

class TestCaching:
    def test_reads_memoized_within_ttl(self):
        clock = FakeClock()
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store, ttl_seconds=300, clock=clock)
        catalog.get_roles(1)
        clock.now = 299
        catalog.get_roles(1)
        assert store.calls == 1

    def test_refetch_after_ttl(self):
        clock = FakeClock()
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store, ttl_seconds=300, clock=clock)
        catalog.get_roles(1)
        clock.now = 300
        catalog.get_roles(1)
        assert store.calls == 2

    def test_practices_cached_separately(self):
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store)
        catalog.get_roles(1)
        catalog.get_roles(2)
        catalog.get_roles(None)
        assert store.calls == 3

    def test_invalidate_practice_takes_effect_immediately(self):
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store)
        catalog.get_roles(1)
        catalog.get_roles(2)
        catalog.invalidate(1)
        catalog.get_roles(1)
        catalog.get_roles(2)
        assert store.calls == 3

    def test_invalidate_all(self):
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store)
        catalog.get_roles(1)
        catalog.get_roles(None)
        catalog.invalidate()
        catalog.get_roles(1)
        catalog.get_roles(None)
        assert store.calls == 4

    def test_new_role_visible_after_invalidate(self):
        store = InMemoryRoleStore()
        catalog = RoleCatalog(store)
        assert catalog.get_roles(1) == []
        store.save_role(_make_custom_role())
        assert catalog.get_roles(1) == []
        catalog.invalidate(1)
        assert [r.id for r in catalog.get_roles(1)] == ["custom_kennel"]


# ---------------------------------------------------------------------------
# 3. Store failure
# ---------------------------------------------------------------------------

class TestStoreFailure:
    def test_failure_without_cache_returns_empty(self, caplog):
        store = CountingStore()
        store.fail = True
        catalog = RoleCatalog(store)
        with caplog.at_level("WARNING", logger="vetguard.catalog"):
            assert catalog.get_roles(1) == []
        assert "role store failed" in caplog.text

    def test_failure_serves_stale_cache(self):
        clock = FakeClock()
        store = CountingStore([_make_custom_role()])
        catalog = RoleCatalog(store, ttl_seconds=60, clock=clock)
        catalog.get_roles(1)
        store.fail = True
        clock.now = 600
        assert [r.id for r in catalog.get_roles(1)] == ["custom_kennel"]

    def test_failure_falls_back_to_template_lookup(self):
        store = CountingStore()
        store.fail = True
        catalog = RoleCatalog(store)
        role = catalog.get_role("VETERINARIAN", 1)
        assert role is not None
        assert role.is_system_defined is True


# ---------------------------------------------------------------------------
# 4. Lookup precedence
# ---------------------------------------------------------------------------

class TestLookup:
    def test_dynamic_role_shadows_template(self):
        catalog = RoleCatalog(InMemoryRoleStore([_make_system_role()]))
        role = catalog.get_role("CASHIER")
        assert role.permissions[0].granted is False

    def test_lookup_by_id_and_name(self):
        catalog = RoleCatalog(InMemoryRoleStore([_make_custom_role()]))
        assert catalog.get_role("custom_kennel", 1).name == "KENNEL_STAFF"
        assert catalog.get_role("KENNEL_STAFF", 1).id == "custom_kennel"

    def test_custom_role_invisible_to_other_practice(self):
        catalog = RoleCatalog(InMemoryRoleStore([_make_custom_role(practice_id=1)]))
        assert catalog.get_role("custom_kennel", 2) is None

    def test_unknown_role(self):
        catalog = RoleCatalog(InMemoryRoleStore())
        assert catalog.get_role("JANITOR", 1) is None
