"""graphcache - invalidation policies and time-to-live for normalized graph caches."""

from graphcache.cache import InvalidationPolicyCache, ReadResultStatus
from graphcache.core.ids import ROOT_MUTATION, ROOT_QUERY, make_entity_id, make_reference
from graphcache.errors import (
    CollectionsDisabledError,
    GraphCacheError,
    InvalidSnapshotError,
    PolicyConfigError,
    UnknownPolicyEventError,
)
from graphcache.policies import (
    InvalidationPolicies,
    PolicyActionEntity,
    PolicyEvent,
    RenewalPolicy,
    TypePolicy,
)
from graphcache.store import (
    DELETE,
    DiffResult,
    EvictOptions,
    FieldSelection,
    InMemoryStore,
    ModifyOptions,
    NormalizedStore,
    ReadOptions,
    Variable,
    WriteOptions,
)

__version__ = "0.1.0"

__all__ = [
    "CollectionsDisabledError",
    "DELETE",
    "DiffResult",
    "EvictOptions",
    "FieldSelection",
    "GraphCacheError",
    "InMemoryStore",
    "InvalidSnapshotError",
    "InvalidationPolicies",
    "InvalidationPolicyCache",
    "ModifyOptions",
    "NormalizedStore",
    "PolicyActionEntity",
    "PolicyConfigError",
    "PolicyEvent",
    "ROOT_MUTATION",
    "ROOT_QUERY",
    "ReadOptions",
    "ReadResultStatus",
    "RenewalPolicy",
    "TypePolicy",
    "UnknownPolicyEventError",
    "Variable",
    "WriteOptions",
    "make_entity_id",
    "make_reference",
]
