"""Secondary index from cache identities to their type and cache time.

For a store shaped like::

    {
        "ROOT_QUERY": {
            "__typename": "Query",
            'employees({"filter":"x"})': {"__typename": "EmployeesResponse", "data": [...]},
        },
        "Employee:1": {"__typename": "Employee", "id": 1, "name": "Alice"},
    }

the type map holds::

    entities_by_id = {
        "Employee:1": TypeMapEntity("Employee:1", "Employee", cache_time=...),
        "ROOT_QUERY.employees": TypeMapEntity(
            "ROOT_QUERY", "EmployeesResponse", field_name="employees",
            store_field_names=StoreFieldNames(1, {'employees({"filter":"x"})': StoreFieldEntry(...)}),
        ),
    }

and ``entities_by_type`` groups the same records by typename.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from graphcache.core.clock import Clock, now_ms
from graphcache.core.ids import field_name_from_store_name, is_query, make_entity_id
from graphcache.entity_store.types import (
    EntitiesById,
    EntitiesByType,
    ExtractedTypeMap,
    StoreFieldEntry,
    StoreFieldNames,
    TypeMapEntity,
)

logger = logging.getLogger(__name__)


class EntityTypeMap:
    """Index of every entity and root field written to the store."""

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock: Clock = clock or now_ms
        self._entities_by_type: EntitiesByType = {}
        self._entities_by_id: EntitiesById = {}

    def write(
        self,
        typename: str,
        data_id: str,
        store_field_name: str | None = None,
        variables: dict[str, Any] | None = None,
        args: dict[str, Any] | None = None,
    ) -> None:
        """Record a write of ``data_id`` (or of one root field variant)."""
        field_name = field_name_from_store_name(store_field_name) if store_field_name else None
        entity_id = make_entity_id(data_id, field_name)
        existing = self._entities_by_id.get(entity_id)
        is_root_field = is_query(data_id) and store_field_name is not None

        if existing is not None:
            if not is_root_field or existing.store_field_names is None:
                return
            entry = existing.store_field_names.entries.get(store_field_name)
            if entry is not None:
                if variables is not None:
                    entry.variables = variables
                if args is not None:
                    entry.args = args
            else:
                existing.store_field_names.entries[store_field_name] = StoreFieldEntry(
                    cache_time=self.clock(), variables=variables, args=args
                )
                existing.store_field_names.size += 1
            return

        cache_time = self.clock()
        if is_root_field:
            entity = TypeMapEntity(
                data_id=data_id,
                typename=typename,
                field_name=field_name,
                store_field_names=StoreFieldNames(
                    size=1,
                    entries={
                        store_field_name: StoreFieldEntry(
                            cache_time=cache_time, variables=variables, args=args
                        )
                    },
                ),
            )
        else:
            entity = TypeMapEntity(data_id=data_id, typename=typename, cache_time=cache_time)

        self._entities_by_type.setdefault(typename, {})[entity_id] = entity
        self._entities_by_id[entity_id] = entity

    def evict(self, data_id: str, store_field_name: str | None = None) -> None:
        """Remove an entity, or a single store-field variant of a root field."""
        field_name = field_name_from_store_name(store_field_name) if store_field_name else None
        entity_id = make_entity_id(data_id, field_name)
        entity = self._entities_by_id.get(entity_id)
        if entity is None:
            return

        # A bare field name removes every argument variant of that field.
        if store_field_name and field_name != store_field_name:
            store_field_names = entity.store_field_names
            if store_field_names is None or store_field_name not in store_field_names.entries:
                return
            if store_field_names.size <= 1:
                self._remove(entity_id, entity.typename)
            else:
                del store_field_names.entries[store_field_name]
                store_field_names.size -= 1
        else:
            self._remove(entity_id, entity.typename)

    def _remove(self, entity_id: str, typename: str) -> None:
        del self._entities_by_id[entity_id]
        entities_for_type = self._entities_by_type.get(typename)
        if entities_for_type is not None:
            entities_for_type.pop(entity_id, None)
            if not entities_for_type:
                del self._entities_by_type[typename]

    def read_entities_by_type(self, typename: str) -> Mapping[str, TypeMapEntity]:
        return self._entities_by_type.get(typename, {})

    def read_entity_by_id(self, entity_id: str) -> TypeMapEntity | None:
        return self._entities_by_id.get(entity_id)

    def renew_entity(self, data_id: str, store_field_name: str | None = None) -> None:
        """Reset the cache time of an entity or one of its store-field variants."""
        field_name = field_name_from_store_name(store_field_name) if store_field_name else None
        entity = self._entities_by_id.get(make_entity_id(data_id, field_name))
        if entity is None:
            return

        cache_time = self.clock()
        if is_query(data_id) and store_field_name and entity.store_field_names is not None:
            entry = entity.store_field_names.entries.get(store_field_name)
            if entry is not None:
                entry.cache_time = max(entry.cache_time, cache_time)
        else:
            entity.cache_time = max(entity.cache_time or 0, cache_time)

    def restore(self, entities_by_id: Mapping[str, TypeMapEntity | dict[str, Any]]) -> None:
        """Rebuild both indexes from an extracted (or persisted) by-id index."""
        restored: EntitiesById = {}
        for entity_id, entity in entities_by_id.items():
            restored[entity_id] = (
                copy.deepcopy(entity)
                if isinstance(entity, TypeMapEntity)
                else TypeMapEntity.from_dict(entity)
            )

        self._entities_by_id = restored
        self._entities_by_type = {}
        for entity_id, entity in restored.items():
            self._entities_by_type.setdefault(entity.typename, {})[entity_id] = entity
        logger.debug("Restored entity type map with %d entities", len(restored))

    def extract(self) -> ExtractedTypeMap:
        # One deepcopy call keeps the shared records shared between the two copies.
        entities_by_id, entities_by_type = copy.deepcopy(
            (self._entities_by_id, self._entities_by_type)
        )
        return ExtractedTypeMap(entities_by_id=entities_by_id, entities_by_type=entities_by_type)

    def clear(self) -> None:
        self._entities_by_id = {}
        self._entities_by_type = {}

    def __len__(self) -> int:
        return len(self._entities_by_id)
