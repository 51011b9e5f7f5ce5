"""Tests for per-type collections and the *_where operations."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from graphcache.cache import InvalidationPolicyCache
from graphcache.cache.collections import collection_entity_id
from graphcache.errors import CollectionsDisabledError
from graphcache.store import EvictOptions, FieldSelection, InMemoryStore, WriteOptions

if TYPE_CHECKING:
    from conftest import FakeClock

STAFF = [(1, "Ada", "Engineering"), (2, "Grace", "Engineering"), (3, "Edsger", "Research")]


def write_employee(cache: InvalidationPolicyCache, employee_id: int, name: str, team: str) -> None:
    cache.write(
        WriteOptions(
            result={"__typename": "Employee", "id": employee_id, "name": name, "team": team},
            data_id=f"Employee:{employee_id}",
        )
    )


class TestCollectionMaintenance:
    """Test buffering and flushing of collection inserts."""

    @pytest.fixture
    def schedule_flush(self) -> Mock:
        return Mock()

    @pytest.fixture
    def cache(self, clock: FakeClock, schedule_flush: Mock) -> InvalidationPolicyCache:
        return InvalidationPolicyCache(
            InMemoryStore(),
            {},
            clock=clock,
            enable_collections=True,
            schedule_flush=schedule_flush,
        )

    def test_schedules_one_flush_per_batch(
        self, cache: InvalidationPolicyCache, schedule_flush: Mock
    ) -> None:
        for employee in STAFF:
            write_employee(cache, *employee)
        schedule_flush.assert_called_once()

        cache.flush_collection_updates()
        write_employee(cache, 4, "Barbara", "Research")
        assert schedule_flush.call_count == 2

    def test_rewrites_are_not_inserts(
        self, cache: InvalidationPolicyCache, schedule_flush: Mock
    ) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        cache.flush_collection_updates()
        write_employee(cache, 1, "Ada L.", "Engineering")

        schedule_flush.assert_called_once()
        assert cache.collections.has_pending is False

    def test_flush_writes_collection_entity(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        write_employee(cache, 2, "Grace", "Engineering")
        cache.flush_collection_updates()

        assert cache.store.extract()[collection_entity_id("Employee")] == {
            "__typename": "CacheExtensionsCollectionEntity",
            "id": "Employee",
            "data": [{"__ref": "Employee:1"}, {"__ref": "Employee:2"}],
        }
        assert cache.entity_type_map.read_entities_by_type("CacheExtensionsCollectionEntity") == {}

    def test_flush_broadcasts_only_when_pending(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        with patch.object(
            cache.store, "broadcast_watches", wraps=cache.store.broadcast_watches
        ) as spy:
            cache.flush_collection_updates()
            cache.flush_collection_updates()
        spy.assert_called_once()

    def test_reads_flush_pending_inserts(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        assert cache.read_reference_where("Employee") == [{"__ref": "Employee:1"}]
        assert cache.collections.has_pending is False

    def test_reset_drops_pending_inserts(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        cache.reset()
        assert cache.collections.has_pending is False
        assert cache.read_reference_where("Employee") == []


class TestWhereOperations:
    """Test filtered reads and evictions over collections."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        cache = InvalidationPolicyCache(
            InMemoryStore(),
            {"types": {"Employee": {"timeToLive": 100}}},
            clock=clock,
            enable_collections=True,
        )
        for employee in STAFF:
            write_employee(cache, *employee)
        cache.flush_collection_updates()
        return cache

    def test_reference_where_mapping_filter(self, cache: InvalidationPolicyCache) -> None:
        refs = cache.read_reference_where("Employee", {"team": "Engineering"})
        assert refs == [{"__ref": "Employee:1"}, {"__ref": "Employee:2"}]

    def test_reference_where_predicate_filter(self, cache: InvalidationPolicyCache) -> None:
        refs = cache.read_reference_where(
            "Employee", lambda ref, read_field: read_field("name", ref).startswith("E")
        )
        assert refs == [{"__ref": "Employee:3"}]

    def test_reference_where_unknown_type(self, cache: InvalidationPolicyCache) -> None:
        assert cache.read_reference_where("Manager") == []

    def test_reference_where_skips_evicted(self, cache: InvalidationPolicyCache) -> None:
        cache.evict(EvictOptions(id="Employee:1"))
        assert cache.read_reference_where("Employee", {"team": "Engineering"}) == [
            {"__ref": "Employee:2"}
        ]

    def test_fragment_where(self, cache: InvalidationPolicyCache) -> None:
        fields = [FieldSelection("id"), FieldSelection("name")]
        assert cache.read_fragment_where("Employee", {"team": "Research"}, fields) == [
            {"__typename": "Employee", "id": 3, "name": "Edsger"}
        ]

    def test_fragment_where_skips_expired(
        self, cache: InvalidationPolicyCache, clock: FakeClock
    ) -> None:
        clock.set(50)
        write_employee(cache, 2, "Grace", "Engineering")
        clock.set(120)

        result = cache.read_fragment_where("Employee", {"team": "Engineering"})
        assert result == [
            {"__typename": "Employee", "id": 2, "name": "Grace", "team": "Engineering"}
        ]
        assert cache.entity_type_map.read_entity_by_id("Employee:1") is None

    def test_evict_where(self, cache: InvalidationPolicyCache) -> None:
        with patch.object(
            cache.store, "broadcast_watches", wraps=cache.store.broadcast_watches
        ) as spy:
            evicted = cache.evict_where("Employee", {"team": "Engineering"})

        assert evicted == ["Employee:1", "Employee:2"]
        spy.assert_called_once()
        assert cache.collections.references("Employee") == [{"__ref": "Employee:3"}]
        assert set(cache.entity_type_map.read_entities_by_type("Employee")) == {"Employee:3"}

    def test_evict_where_nothing_matches(self, cache: InvalidationPolicyCache) -> None:
        with patch.object(
            cache.store, "broadcast_watches", wraps=cache.store.broadcast_watches
        ) as spy:
            assert cache.evict_where("Employee", {"team": "Sales"}) == []
        spy.assert_not_called()


class TestCollectionsDisabled:
    """Test the *_where operations without collections."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        return InvalidationPolicyCache(InMemoryStore(), {}, clock=clock, enable_collections=False)

    def test_where_operations_raise(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        with pytest.raises(CollectionsDisabledError):
            cache.read_reference_where("Employee")
        with pytest.raises(CollectionsDisabledError):
            cache.read_fragment_where("Employee")
        with pytest.raises(CollectionsDisabledError):
            cache.evict_where("Employee")

    def test_no_collection_entities_written(self, cache: InvalidationPolicyCache) -> None:
        write_employee(cache, 1, "Ada", "Engineering")
        cache.flush_collection_updates()
        assert collection_entity_id("Employee") not in cache.store.extract()
