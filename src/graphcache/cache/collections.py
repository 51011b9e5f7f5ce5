"""Per-type collections of every entity reference written to the store.

Each typename with at least one normalized entity gets a collection entity::

    "CacheExtensionsCollectionEntity:Employee": {
        "__typename": "CacheExtensionsCollectionEntity",
        "id": "Employee",
        "data": [{"__ref": "Employee:1"}, {"__ref": "Employee:2"}],
    }

New inserts are buffered and merged into their collection by
``flush``; the host decides when that happens.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Union

from graphcache.core.ids import REF_KEY, TYPENAME_KEY, make_reference
from graphcache.entity_store.watcher import COLLECTION_TYPENAME
from graphcache.store.base import NormalizedStore

logger = logging.getLogger(__name__)

ReadField = Callable[[str, Mapping[str, Any]], Any]
FilterPredicate = Callable[[dict[str, str], ReadField], bool]
CollectionFilter = Union[Mapping[str, Any], FilterPredicate]


def collection_entity_id(typename: str) -> str:
    return f"{COLLECTION_TYPENAME}:{typename}"


class CollectionManager:
    """Buffers first-time entity inserts and maintains the collection entities.

    Args:
        store: Store holding the collection entities.
        schedule_flush: Called once per batch of pending inserts to ask the
            host to invoke ``flush`` (for example on the next event loop turn).
    """

    def __init__(
        self,
        store: NormalizedStore,
        schedule_flush: Callable[[], None] | None = None,
    ) -> None:
        self.store = store
        self.schedule_flush = schedule_flush
        self._pending: dict[str, list[str]] = {}

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def record_insert(self, typename: str, data_id: str) -> None:
        """Buffer a first-time insert of ``data_id``."""
        was_idle = not self._pending
        self._pending.setdefault(typename, []).append(data_id)
        if was_idle and self.schedule_flush is not None:
            self.schedule_flush()

    def flush(self) -> bool:
        """Merge buffered inserts into their collections. Returns whether any were pending."""
        if not self._pending:
            return False

        pending, self._pending = self._pending, {}
        for typename, data_ids in pending.items():
            collection_id = collection_entity_id(typename)
            existing = self.store.read_field("data", make_reference(collection_id)) or []
            known = {ref[REF_KEY] for ref in existing}
            data = list(existing)
            for data_id in data_ids:
                if data_id not in known:
                    known.add(data_id)
                    data.append(make_reference(data_id))
            self.store.merge(
                collection_id,
                {TYPENAME_KEY: COLLECTION_TYPENAME, "id": typename, "data": data},
            )
            logger.debug("Flushed %d inserts into the %s collection", len(data_ids), typename)
        return True

    def references(self, typename: str) -> list[dict[str, str]]:
        """References held by the collection of ``typename``, live or not."""
        data = self.store.read_field("data", make_reference(collection_entity_id(typename)))
        return [dict(ref) for ref in data or []]

    def is_live(self, ref: Mapping[str, str]) -> bool:
        return self.store.read_field(TYPENAME_KEY, ref) is not None

    def matches(self, ref: dict[str, str], filter: CollectionFilter | None) -> bool:
        if filter is None:
            return True
        if callable(filter):
            return bool(filter(ref, self.store.read_field))
        return all(
            self.store.read_field(field_name, ref) == value for field_name, value in filter.items()
        )

    def where(self, typename: str, filter: CollectionFilter | None = None) -> list[dict[str, str]]:
        """Live references of ``typename`` that match ``filter``."""
        return [
            ref
            for ref in self.references(typename)
            if self.is_live(ref) and self.matches(ref, filter)
        ]

    def prune(self, typename: str, data_ids: set[str]) -> None:
        """Drop ``data_ids`` from the collection of ``typename``."""
        if not data_ids:
            return
        collection_id = collection_entity_id(typename)
        remaining = [ref for ref in self.references(typename) if ref[REF_KEY] not in data_ids]
        self.store.merge(
            collection_id,
            {TYPENAME_KEY: COLLECTION_TYPENAME, "id": typename, "data": remaining},
        )

    def clear(self) -> None:
        self._pending = {}
