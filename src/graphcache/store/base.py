"""Normalized store interface.

Defines the narrow contract the invalidation engine consumes. The store owns
identity assignment, reference resolution and field encoding; the engine only
observes its primitive mutations (``merge``, ``delete``, ``clear``,
``replace``) and drives its public operations.

The primitives are looked up on the instance at call time so an observer can
wrap them (see ``graphcache.entity_store.watcher``). Implementations must route
their own internal mutations through ``self.merge``/``self.delete``/
``self.clear`` rather than private helpers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from graphcache.store.types import (
    DiffResult,
    EvictOptions,
    ModifyOptions,
    ReadOptions,
    WatchCallback,
    WriteOptions,
)

DiffFunction = Callable[[ReadOptions], DiffResult]


class NormalizedStore(ABC):
    """Abstract identity-keyed object store with reference semantics."""

    @property
    @abstractmethod
    def root_typenames_by_id(self) -> Mapping[str, str]:
        """Typename of each root container (``ROOT_QUERY`` -> ``Query``)."""
        ...

    @abstractmethod
    def identify(self, obj: Mapping[str, Any]) -> str | None:
        """Return the store identity of an object, or None if it has none."""
        ...

    @abstractmethod
    def get_store_field_name(
        self, typename: str | None, field_name: str, args: Mapping[str, Any] | None = None
    ) -> str:
        """Return the on-store key for a field called with ``args``."""
        ...

    @abstractmethod
    def read_field(self, field_name: str, from_: Mapping[str, Any] | None = None) -> Any:
        """Read a field from a reference or store object (default: ROOT_QUERY)."""
        ...

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    @abstractmethod
    def read(self, options: ReadOptions) -> Any:
        """Read a result tree; None when incomplete (unless partial data is requested)."""
        ...

    @abstractmethod
    def diff(self, options: ReadOptions) -> DiffResult:
        """Read a result tree together with its completeness."""
        ...

    @abstractmethod
    def write(self, options: WriteOptions) -> None:
        """Normalize and store a result tree."""
        ...

    @abstractmethod
    def evict(self, options: EvictOptions) -> bool:
        """Remove an entity or one of its fields. Returns whether anything was removed."""
        ...

    @abstractmethod
    def modify(self, options: ModifyOptions) -> bool:
        """Apply field modifiers to an entity. Returns whether anything changed."""
        ...

    @abstractmethod
    def extract(self, optimistic: bool = False) -> dict[str, Any]:
        """Return a serializable snapshot of the store."""
        ...

    @abstractmethod
    def restore(self, snapshot: dict[str, Any] | None) -> None:
        """Replace the store contents with a snapshot (via ``replace``)."""
        ...

    @abstractmethod
    def watch(self, options: ReadOptions, callback: WatchCallback) -> Callable[[], None]:
        """Register a watch; returns an unsubscribe function."""
        ...

    @abstractmethod
    def broadcast_watches(self, diff: DiffFunction | None = None) -> None:
        """Re-diff every watch (through ``diff`` when given) and notify changes."""
        ...

    @abstractmethod
    def is_operating_on_root_data(self) -> bool:
        """False while writes are being applied to an optimistic layer."""
        ...

    # ------------------------------------------------------------------
    # Primitive mutations (observed by the entity store watcher)
    # ------------------------------------------------------------------

    @abstractmethod
    def merge(self, data_id: str, incoming: Mapping[str, Any]) -> None:
        """Merge fields into the stored object for ``data_id``."""
        ...

    @abstractmethod
    def delete(
        self,
        data_id: str,
        field_name: str | None = None,
        args: Mapping[str, Any] | None = None,
    ) -> bool:
        """Delete an object, or one field (all argument variants for a bare name)."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored object."""
        ...

    @abstractmethod
    def replace(self, snapshot: dict[str, Any] | None) -> None:
        """Replace all stored objects with the snapshot's."""
        ...
