"""Tests for read/write result processing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from graphcache.cache import CacheResultProcessor, InvalidationPolicyCache, ReadResultStatus
from graphcache.store import FieldSelection, InMemoryStore, ReadOptions, Variable, WriteOptions

if TYPE_CHECKING:
    from conftest import FakeClock

EMPLOYEES_FIELD = FieldSelection("employees", arguments={"name": Variable("name")})


def employees_result(*ids: int) -> dict:
    return {
        "employees": {
            "__typename": "EmployeesResponse",
            "data": [{"__typename": "Employee", "id": i, "name": f"E{i}"} for i in ids],
        }
    }


class TestProcessReadResult:
    """Test pruning and status aggregation on read."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        cache = InvalidationPolicyCache(
            InMemoryStore(),
            {"types": {"Employee": {"timeToLive": 100}}},
            clock=clock,
            enable_collections=False,
        )
        cache.write(
            WriteOptions(result=employees_result(1, 2), fields=[EMPLOYEES_FIELD], variables={"name": "E"})
        )
        return cache

    @pytest.fixture
    def processor(self, cache: InvalidationPolicyCache) -> CacheResultProcessor:
        return cache.processor

    @pytest.fixture
    def options(self) -> ReadOptions:
        return ReadOptions(fields=[EMPLOYEES_FIELD], variables={"name": "E"})

    def test_fresh_result_is_complete(
        self, cache: InvalidationPolicyCache, processor: CacheResultProcessor, options: ReadOptions
    ) -> None:
        result = cache.store.read(options)
        assert processor.process_read_result(result, options) is ReadResultStatus.COMPLETE
        assert result == employees_result(1, 2)

    def test_expired_list_items_are_filtered(
        self,
        cache: InvalidationPolicyCache,
        processor: CacheResultProcessor,
        options: ReadOptions,
        clock: FakeClock,
    ) -> None:
        clock.set(50)
        cache.write(
            WriteOptions(
                result={"__typename": "Employee", "id": 2, "name": "E2"}, data_id="Employee:2"
            )
        )
        clock.set(120)

        result = cache.store.read(options)
        status = processor.process_read_result(result, options)

        assert status is ReadResultStatus.INCOMPLETE
        assert result == employees_result(2)
        assert cache.entity_type_map.read_entity_by_id("Employee:1") is None
        assert "Employee:1" not in cache.store.extract()

    def test_expired_root_entity_is_evicted(
        self, cache: InvalidationPolicyCache, processor: CacheResultProcessor, clock: FakeClock
    ) -> None:
        options = ReadOptions(root_id="Employee:1")
        result = cache.store.read(options)
        clock.set(101)
        assert processor.process_read_result(result, options) is ReadResultStatus.EVICTED

    def test_non_mapping_result_is_complete(
        self, processor: CacheResultProcessor, options: ReadOptions
    ) -> None:
        assert processor.process_read_result(None, options) is ReadResultStatus.COMPLETE

    def test_status_ordering(self) -> None:
        assert ReadResultStatus.EVICTED < ReadResultStatus.INCOMPLETE < ReadResultStatus.COMPLETE


class TestProcessRootFieldReads:
    """Test expiry of root query fields."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        cache = InvalidationPolicyCache(
            InMemoryStore(),
            {"types": {"EmployeesResponse": {"timeToLive": 100}}},
            clock=clock,
            enable_collections=False,
        )
        cache.write(
            WriteOptions(result=employees_result(1), fields=[EMPLOYEES_FIELD], variables={"name": "E"})
        )
        return cache

    def test_expired_root_field_is_dropped(
        self, cache: InvalidationPolicyCache, clock: FakeClock
    ) -> None:
        options = ReadOptions(fields=[EMPLOYEES_FIELD], variables={"name": "E"})
        result = cache.store.read(options)
        clock.set(101)

        status = cache.processor.process_read_result(result, options)

        assert status is ReadResultStatus.INCOMPLETE
        assert result == {}
        assert cache.entity_type_map.read_entity_by_id("ROOT_QUERY.employees") is None

    def test_unselected_read_uses_store_keys(
        self, cache: InvalidationPolicyCache, clock: FakeClock
    ) -> None:
        options = ReadOptions()
        result = cache.store.read(options)
        assert 'employees({"name":"E"})' in result
        clock.set(101)

        assert cache.processor.process_read_result(result, options) is ReadResultStatus.INCOMPLETE
        assert result == {}


    def test_both_key_forms_are_evicted(self, clock: FakeClock) -> None:
        cache = InvalidationPolicyCache(
            InMemoryStore(key_args={"Query.employees": ["name"]}),
            {"types": {"EmployeesResponse": {"timeToLive": 100}}},
            clock=clock,
            enable_collections=False,
        )
        field = FieldSelection("employees", arguments={"name": Variable("name"), "first": 10})
        cache.write(
            WriteOptions(result=employees_result(1), fields=[field], variables={"name": "E"})
        )
        entity_key = 'employees({"first":10,"name":"E"})'
        cache.entity_type_map.write("EmployeesResponse", "ROOT_QUERY", entity_key)
        entity = cache.entity_type_map.read_entity_by_id("ROOT_QUERY.employees")
        assert list(entity.store_field_names.entries) == ['employees({"name":"E"})', entity_key]

        options = ReadOptions(fields=[field], variables={"name": "E"})
        result = cache.store.read(options)
        clock.set(101)

        assert cache.processor.process_read_result(result, options) is ReadResultStatus.INCOMPLETE
        assert cache.entity_type_map.read_entity_by_id("ROOT_QUERY.employees") is None


class TestProcessWriteResult:
    """Test bookkeeping recorded on write."""

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InvalidationPolicyCache:
        return InvalidationPolicyCache(
            InMemoryStore(),
            {"types": {"EmployeesResponse": {"timeToLive": 100}}},
            clock=clock,
            enable_collections=False,
        )

    def test_records_used_variables_and_args(self, cache: InvalidationPolicyCache) -> None:
        field = FieldSelection(
            "employees", arguments={"name": Variable("name"), "first": 10}
        )
        cache.write(
            WriteOptions(
                result=employees_result(1),
                fields=[field],
                variables={"name": "E", "unrelated": True},
            )
        )

        entity = cache.entity_type_map.read_entity_by_id("ROOT_QUERY.employees")
        entry = entity.store_field_names.entries['employees({"first":10,"name":"E"})']
        assert entry.variables == {"name": "E"}
        assert entry.args == {"name": "E", "first": 10}

    def test_write_renews_written_variant(
        self, cache: InvalidationPolicyCache, clock: FakeClock
    ) -> None:
        options = WriteOptions(result=employees_result(1), fields=[EMPLOYEES_FIELD], variables={"name": "E"})
        cache.write(options)
        clock.set(80)
        cache.write(options)

        entry = cache.entity_type_map.read_entity_by_id(
            "ROOT_QUERY.employees"
        ).store_field_names.entries['employees({"name":"E"})']
        assert entry.cache_time == 80
