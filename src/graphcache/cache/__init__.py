"""Invalidation policy cache and its result processing.

Provides:
- InvalidationPolicyCache, the orchestrator wrapping a normalized store
- Read/write result processing against invalidation policies
- Per-type collections for evict_where / read_reference_where
- Cached variables persisted in the cache
"""

from graphcache.cache.cached_vars import CACHED_VAR_TYPENAME, CachedVar, CachedVarRegistry
from graphcache.cache.collections import CollectionManager, collection_entity_id
from graphcache.cache.invalidation_cache import InvalidationPolicyCache
from graphcache.cache.processor import CacheResultProcessor, ReadResultStatus

__all__ = [
    # Orchestrator
    "InvalidationPolicyCache",
    # Result processing
    "CacheResultProcessor",
    "ReadResultStatus",
    # Collections
    "CollectionManager",
    "collection_entity_id",
    # Cached variables
    "CACHED_VAR_TYPENAME",
    "CachedVar",
    "CachedVarRegistry",
]
