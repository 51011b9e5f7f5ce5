"""Normalized store contract and the in-memory reference store."""

from graphcache.store.base import NormalizedStore
from graphcache.store.memory import InMemoryStore
from graphcache.store.types import (
    DELETE,
    DiffResult,
    EvictOptions,
    FieldSelection,
    ModifierDetails,
    ModifyOptions,
    ReadOptions,
    Variable,
    WriteOptions,
)

__all__ = [
    "DELETE",
    "DiffResult",
    "EvictOptions",
    "FieldSelection",
    "InMemoryStore",
    "ModifierDetails",
    "ModifyOptions",
    "NormalizedStore",
    "ReadOptions",
    "Variable",
    "WriteOptions",
]
