"""Keeps the entity type map in sync with a normalized store.

The watcher wraps the store's primitive mutations (merge, delete, clear,
replace) on the store instance. Each wrapper calls the original primitive and
records the effect in the ``EntityTypeMap``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from graphcache.core.ids import TYPENAME_KEY, is_query, make_entity_id
from graphcache.entity_store.type_map import EntityTypeMap
from graphcache.errors import InvalidSnapshotError
from graphcache.store.base import NormalizedStore

logger = logging.getLogger(__name__)

COLLECTION_TYPENAME = "CacheExtensionsCollectionEntity"
INVALIDATION_KEY = "invalidation"

InsertCallback = Callable[[str, str], None]
ReplaceCallback = Callable[[], None]

_PRIMITIVES = ("merge", "delete", "clear", "replace")


class EntityStoreWatcher:
    """Intercepts store primitives to maintain the entity type map.

    Args:
        store: The normalized store to observe.
        entity_type_map: Index updated on every observed mutation.
        on_insert: Called with ``(typename, data_id)`` the first time a
            normalized entity is merged (collection maintenance).
        on_replace: Called after the store contents were replaced.
    """

    def __init__(
        self,
        store: NormalizedStore,
        entity_type_map: EntityTypeMap,
        on_insert: InsertCallback | None = None,
        on_replace: list[ReplaceCallback] | None = None,
    ) -> None:
        self.store = store
        self.entity_type_map = entity_type_map
        self.on_insert = on_insert
        self.on_replace: list[ReplaceCallback] = list(on_replace or [])
        self._originals: dict[str, Callable[..., Any]] = {
            name: getattr(store, name) for name in _PRIMITIVES
        }
        self._wrapped: dict[str, Callable[..., Any]] = {
            "merge": self._merge,
            "delete": self._delete,
            "clear": self._clear,
            "replace": self._replace,
        }
        self._watching = False
        self.watch()

    @property
    def is_watching(self) -> bool:
        return self._watching

    def watch(self) -> None:
        """Install the intercepting primitives (idempotent)."""
        if self._watching:
            return
        for name, wrapper in self._wrapped.items():
            setattr(self.store, name, wrapper)
        self._watching = True

    def pause(self) -> None:
        """Restore the store's original primitives (idempotent)."""
        if not self._watching:
            return
        for name, original in self._originals.items():
            setattr(self.store, name, original)
        self._watching = False

    def _typename_for_field(self, data_id: str, value: Any) -> str | None:
        # Root fields holding references or scalars are typed by their root container.
        if isinstance(value, dict) and value.get(TYPENAME_KEY):
            return value[TYPENAME_KEY]
        return self.store.root_typenames_by_id.get(data_id)

    def _merge(self, data_id: str, incoming: Mapping[str, Any]) -> None:
        self._originals["merge"](data_id, incoming)

        if is_query(data_id):
            for store_field_name, value in incoming.items():
                if store_field_name == TYPENAME_KEY:
                    continue
                typename = self._typename_for_field(data_id, value)
                if typename:
                    self.entity_type_map.write(typename, data_id, store_field_name)
            return

        typename = incoming.get(TYPENAME_KEY)
        if not data_id or not typename or typename == COLLECTION_TYPENAME:
            return
        is_new = self.entity_type_map.read_entity_by_id(data_id) is None
        self.entity_type_map.write(typename, data_id)
        if is_new and self.on_insert is not None:
            self.on_insert(typename, data_id)

    def _delete(
        self,
        data_id: str,
        field_name: str | None = None,
        args: Mapping[str, Any] | None = None,
    ) -> bool:
        result = self._originals["delete"](data_id, field_name, args)

        if field_name is None:
            self.entity_type_map.evict(data_id)
            return result

        # Deleting one field of a normalized entity leaves the entity in place.
        if not is_query(data_id):
            return result

        store_field_name = field_name
        if args:
            entity = self.entity_type_map.read_entity_by_id(make_entity_id(data_id, field_name))
            typename = self.store.root_typenames_by_id.get(data_id) or (
                entity.typename if entity else None
            )
            store_field_name = self.store.get_store_field_name(typename, field_name, args)
        self.entity_type_map.evict(data_id, store_field_name)
        return result

    def _clear(self) -> None:
        self.entity_type_map.clear()
        self._originals["clear"]()

    def _replace(self, snapshot: dict[str, Any] | None) -> None:
        invalidation = snapshot.get(INVALIDATION_KEY) if snapshot else None

        if not snapshot or invalidation is None:
            self._originals["replace"](snapshot)
        else:
            entities_by_id = (
                invalidation.get("entitiesById", {}) if isinstance(invalidation, Mapping) else None
            )
            if not isinstance(entities_by_id, Mapping):
                raise InvalidSnapshotError("invalidation.entitiesById must be a mapping")
            data = {key: value for key, value in snapshot.items() if key != INVALIDATION_KEY}
            self.entity_type_map.restore(entities_by_id)
            # Merges replayed by the replacement would re-stamp every cache time,
            # so the watcher stays out of the way until the store is replaced.
            self.pause()
            try:
                self._originals["replace"](data)
            finally:
                self.watch()
            logger.debug("Restored entity type map from persisted snapshot")

        for callback in self.on_replace:
            callback()
