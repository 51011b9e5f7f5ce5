"""Entity type map and the store watcher that keeps it in sync."""

from graphcache.entity_store.type_map import EntityTypeMap
from graphcache.entity_store.types import (
    ExtractedTypeMap,
    StoreFieldEntry,
    StoreFieldNames,
    TypeMapEntity,
)
from graphcache.entity_store.watcher import COLLECTION_TYPENAME, EntityStoreWatcher

__all__ = [
    "COLLECTION_TYPENAME",
    "EntityStoreWatcher",
    "EntityTypeMap",
    "ExtractedTypeMap",
    "StoreFieldEntry",
    "StoreFieldNames",
    "TypeMapEntity",
]
