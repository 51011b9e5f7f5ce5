"""Invalidation policy cache.

Wraps a ``NormalizedStore`` with type-based time-to-live and cascading
write/evict policies:

    store = InMemoryStore()
    cache = InvalidationPolicyCache(store, {
        "types": {
            "Employee": {"timeToLive": 60_000},
            "DeleteEmployeesResponse": {
                "onWrite": {
                    "Employee": lambda cache, entity: cache.evict(EvictOptions(id=entity.id)),
                },
            },
        },
    })

Reads prune expired entities, writes run write policies, evictions run evict
policies. Mutations made by policy actions never broadcast on their own; each
public call broadcasts to watchers at most once.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from collections.abc import Callable, Mapping
from typing import Any

from graphcache.cache.cached_vars import CachedVar, CachedVarRegistry
from graphcache.cache.collections import CollectionFilter, CollectionManager
from graphcache.cache.processor import CacheResultProcessor, ReadResultStatus
from graphcache.config import Settings, settings as default_settings
from graphcache.core.clock import Clock, now_ms
from graphcache.core.ids import (
    REF_KEY,
    field_name_from_store_name,
    is_query,
    make_entity_id,
    make_reference,
)
from graphcache.entity_store.type_map import EntityTypeMap
from graphcache.entity_store.watcher import INVALIDATION_KEY, EntityStoreWatcher
from graphcache.errors import CollectionsDisabledError
from graphcache.observability.logging import LogContext
from graphcache.policies.manager import InvalidationPolicyManager
from graphcache.policies.types import InvalidationPolicies, PolicyActionFields, PolicyEvent
from graphcache.store.base import NormalizedStore
from graphcache.store.types import (
    DiffResult,
    EvictOptions,
    FieldSelection,
    ModifyOptions,
    ReadOptions,
    WatchCallback,
    WriteOptions,
)

logger = logging.getLogger(__name__)


class InvalidationPolicyCache:
    """Normalized cache with invalidation policies.

    Args:
        store: The normalized store to wrap. Its primitives are observed for
            the lifetime of the cache.
        policies: Policy configuration (model or camelCase/snake_case mapping).
            Defaults to the global TTL and renewal policy from settings.
        clock: Millisecond clock used for cache times.
        enable_collections: Maintain per-type collections for the ``*_where``
            operations. Defaults to ``settings.enable_collections``.
        schedule_flush: Called when collection inserts are pending; the host
            must then call ``flush_collection_updates``.
        name: Cache name attached to log records.
        settings: Settings used for defaults.
    """

    def __init__(
        self,
        store: NormalizedStore,
        policies: InvalidationPolicies | Mapping[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        enable_collections: bool | None = None,
        schedule_flush: Callable[[], None] | None = None,
        name: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or default_settings
        self.store = store
        self.name = name or settings.app_name
        self.clock: Clock = clock or now_ms
        self.policies = (
            InvalidationPolicies.parse(policies)
            if policies is not None
            else InvalidationPolicies.from_settings(settings)
        )
        if enable_collections is None:
            enable_collections = settings.enable_collections

        self._is_broadcasting = False
        self.entity_type_map = EntityTypeMap(clock=self.clock)
        self.collections = (
            CollectionManager(store, schedule_flush=schedule_flush)
            if enable_collections
            else None
        )
        self.cached_vars = CachedVarRegistry(self)
        self.watcher = EntityStoreWatcher(
            store,
            self.entity_type_map,
            on_insert=self.collections.record_insert if self.collections else None,
            on_replace=[self.cached_vars.reset],
        )
        self.policy_manager = InvalidationPolicyManager(
            self.policies, self.entity_type_map, self, clock=self.clock
        )
        self.processor = CacheResultProcessor(store, self.entity_type_map, self.policy_manager)

    # ------------------------------------------------------------------
    # Store delegation
    # ------------------------------------------------------------------

    def identify(self, obj: Mapping[str, Any]) -> str | None:
        return self.store.identify(obj)

    def read_field(self, field_name: str, from_: Mapping[str, Any] | None = None) -> Any:
        return self.store.read_field(field_name, from_)

    def watch(self, options: ReadOptions, callback: WatchCallback) -> Callable[[], None]:
        return self.store.watch(options, callback)

    def is_operating_on_root_data(self) -> bool:
        return self.store.is_operating_on_root_data()

    def broadcast_watches(self) -> None:
        """Re-diff watched reads; read policies do not run for these diffs."""
        self._is_broadcasting = True
        try:
            self.store.broadcast_watches(diff=self.diff)
        finally:
            self._is_broadcasting = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _is_active(self, event: PolicyEvent) -> bool:
        return self.policy_manager.is_policy_event_active(event)

    def read(self, options: ReadOptions) -> Any:
        result = self.store.read(options)
        if not self._is_active(PolicyEvent.READ):
            return result

        processed = copy.deepcopy(result)
        status = self.processor.process_read_result(processed, options)
        if status is ReadResultStatus.COMPLETE:
            return result

        self.broadcast_watches()
        return None if status is ReadResultStatus.EVICTED else processed

    def diff(self, options: ReadOptions) -> DiffResult:
        cache_diff = self.store.diff(options)
        if not self._is_active(PolicyEvent.READ) or self._is_broadcasting:
            return cache_diff

        processed = copy.deepcopy(cache_diff.result)
        status = self.processor.process_read_result(processed, options)
        if status is ReadResultStatus.COMPLETE:
            return cache_diff

        self.broadcast_watches()
        return DiffResult(
            result=None if status is ReadResultStatus.EVICTED else processed,
            complete=False,
            missing=cache_diff.missing,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def write(self, options: WriteOptions) -> None:
        self.store.write(dataclasses.replace(options, broadcast=False))

        # Optimistic writes are skipped; policies run when the real result lands.
        if (
            self._is_active(PolicyEvent.WRITE) or self._is_active(PolicyEvent.READ)
        ) and self.store.is_operating_on_root_data():
            self.processor.process_write_result(options)

        if options.broadcast:
            self.broadcast_watches()

    def evict(self, options: EvictOptions) -> bool:
        data_id = options.id
        if not data_id:
            return False

        if self._is_active(PolicyEvent.EVICT):
            field_name = (
                field_name_from_store_name(options.field_name) if options.field_name else None
            )
            entity = self.entity_type_map.read_entity_by_id(make_entity_id(data_id, field_name))
            if entity is not None:
                store_field_name = None
                if is_query(data_id) and options.field_name:
                    store_field_name = (
                        self.store.get_store_field_name(
                            self.store.root_typenames_by_id.get(data_id),
                            options.field_name,
                            options.args,
                        )
                        if options.args
                        else options.field_name
                    )
                self.policy_manager.run_evict_policy(
                    entity.typename,
                    PolicyActionFields(
                        id=data_id,
                        ref=make_reference(data_id),
                        field_name=field_name,
                        store_field_name=store_field_name,
                        variables=options.args,
                    ),
                )

        evicted = self.store.evict(dataclasses.replace(options, broadcast=False))
        if evicted:
            logger.debug("Evicted %s", make_entity_id(data_id, options.field_name))
            if options.broadcast:
                self.broadcast_watches()
        return evicted

    def modify(self, options: ModifyOptions) -> bool:
        modified = self.store.modify(dataclasses.replace(options, broadcast=False))
        if not modified:
            return False

        if self._is_active(PolicyEvent.WRITE):
            data_id = options.id
            if is_query(data_id):
                for store_field_name in options.fields:
                    field_name = field_name_from_store_name(store_field_name)
                    entity = self.entity_type_map.read_entity_by_id(
                        make_entity_id(data_id, field_name)
                    )
                    if entity is None:
                        continue
                    self.policy_manager.run_write_policy(
                        entity.typename,
                        PolicyActionFields(
                            id=data_id,
                            ref=make_reference(data_id),
                            field_name=field_name,
                            store_field_name=store_field_name,
                        ),
                    )
            else:
                entity = self.entity_type_map.read_entity_by_id(data_id)
                if entity is not None:
                    self.policy_manager.run_write_policy(
                        entity.typename,
                        PolicyActionFields(id=data_id, ref=make_reference(data_id)),
                    )

        if options.broadcast:
            self.broadcast_watches()
        return True

    # ------------------------------------------------------------------
    # Expiration
    # ------------------------------------------------------------------

    def _expire(self, report_only: bool) -> list[str]:
        # Iterate a copy: evictions mutate the live index.
        entities_by_id = self.entity_type_map.extract().entities_by_id
        expired: list[str] = []

        for entity in entities_by_id.values():
            if is_query(entity.data_id) and entity.store_field_names is not None:
                for store_field_name in entity.store_field_names.entries:
                    if self.policy_manager.run_read_policy(
                        entity.typename,
                        entity.data_id,
                        entity.field_name,
                        store_field_name,
                        report_only=report_only,
                    ):
                        expired.append(make_entity_id(entity.data_id, store_field_name))
            elif self.policy_manager.run_read_policy(
                entity.typename, entity.data_id, entity.field_name, report_only=report_only
            ):
                expired.append(make_entity_id(entity.data_id))

        if expired and not report_only:
            logger.info("Expired %d entities", len(expired))
            self.broadcast_watches()
        return expired

    def expire(self) -> list[str]:
        """Evict every entity whose time-to-live has elapsed and return their ids.

        Expired entities are otherwise only evicted lazily, when read.
        """
        with LogContext(cache_id=self.name, operation="expire"):
            return self._expire(report_only=False)

    def expired_entities(self) -> list[str]:
        """Ids of expired entities still in the cache, without evicting them."""
        with LogContext(cache_id=self.name, operation="expired_entities"):
            return self._expire(report_only=True)

    # ------------------------------------------------------------------
    # Policy events
    # ------------------------------------------------------------------

    def activate_policies(self, *events: PolicyEvent | str) -> None:
        """Activate the given policy events, or all of them when none are given."""
        self.policy_manager.activate_policies(*(events or tuple(PolicyEvent)))

    def deactivate_policies(self, *events: PolicyEvent | str) -> None:
        """Deactivate the given policy events, or all of them when none are given."""
        self.policy_manager.deactivate_policies(*(events or tuple(PolicyEvent)))

    def active_events(self) -> list[PolicyEvent]:
        return [event for event in PolicyEvent if self._is_active(event)]

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _require_collections(self) -> CollectionManager:
        if self.collections is None:
            raise CollectionsDisabledError(
                "Collections are disabled; create the cache with enable_collections=True"
            )
        # Reads see every insert made so far.
        self.flush_collection_updates()
        return self.collections

    def flush_collection_updates(self) -> None:
        """Merge pending collection inserts and broadcast once."""
        if self.collections is not None and self.collections.flush():
            self.broadcast_watches()

    def read_reference_where(
        self, typename: str, filter: CollectionFilter | None = None
    ) -> list[dict[str, str]]:
        """References to live ``typename`` entities matching ``filter``.

        ``filter`` is either a mapping of field names to expected values or a
        predicate called with ``(ref, read_field)``.
        """
        return self._require_collections().where(typename, filter)

    def read_fragment_where(
        self,
        typename: str,
        filter: CollectionFilter | None = None,
        fields: list[FieldSelection] | None = None,
    ) -> list[Any]:
        """Read every matching ``typename`` entity, skipping unreadable ones."""
        results = []
        for ref in self.read_reference_where(typename, filter):
            data = self.read(ReadOptions(fields=fields, root_id=ref[REF_KEY]))
            if data is not None:
                results.append(data)
        return results

    def evict_where(self, typename: str, filter: CollectionFilter | None = None) -> list[str]:
        """Evict every matching ``typename`` entity and return the evicted ids."""
        with LogContext(cache_id=self.name, operation="evict_where"):
            collections = self._require_collections()
            evicted: list[str] = []
            for ref in collections.where(typename, filter):
                if self.evict(EvictOptions(id=ref[REF_KEY], broadcast=False)):
                    evicted.append(ref[REF_KEY])

            if evicted:
                collections.prune(typename, set(evicted))
                logger.info("Evicted %d %s entities", len(evicted), typename)
                self.broadcast_watches()
            return evicted

    # ------------------------------------------------------------------
    # Cached variables
    # ------------------------------------------------------------------

    def make_cached_var(self, var_id: str, default: Any) -> CachedVar[Any]:
        """Register a variable persisted in this cache; see ``CachedVarRegistry``."""
        return self.cached_vars.register(var_id, default)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def extract(self, optimistic: bool = False, with_invalidation: bool = True) -> dict[str, Any]:
        """Snapshot of the store, plus the type map unless ``with_invalidation`` is False."""
        snapshot = self.store.extract(optimistic)
        if with_invalidation:
            # entitiesById alone is enough to rebuild both indexes.
            snapshot[INVALIDATION_KEY] = {
                "entitiesById": {
                    entity_id: entity.to_dict()
                    for entity_id, entity in self.entity_type_map.extract().entities_by_id.items()
                }
            }
        return snapshot

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        """Replace the cache contents with an extracted snapshot.

        Raises:
            InvalidSnapshotError: If the ``invalidation`` payload is malformed.
        """
        if self.collections is not None:
            self.collections.clear()
        self.store.restore(snapshot)
        self.broadcast_watches()

    def reset(self) -> None:
        """Remove all data and bookkeeping, then notify watchers."""
        self.store.clear()
        if self.collections is not None:
            self.collections.clear()
        self.cached_vars.reset()
        self.broadcast_watches()
