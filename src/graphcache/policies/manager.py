"""Executes invalidation policies when types are written, evicted or read."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from graphcache.core.clock import Clock, now_ms
from graphcache.core.ids import make_entity_id, make_reference
from graphcache.entity_store.type_map import EntityTypeMap
from graphcache.policies.types import (
    DEFAULT_POLICY_ACTION_KEY,
    CacheOperations,
    InvalidationPolicies,
    LifecycleEvent,
    PolicyActionEntity,
    PolicyActionFields,
    PolicyActionRegistry,
    PolicyEvent,
    RenewalPolicy,
    TypePolicy,
)
from graphcache.store.types import EvictOptions, ModifyOptions

logger = logging.getLogger(__name__)


class PolicyActionCacheOperations:
    """Cache operations handed to policy actions.

    Evictions and modifications go through the cache (so cascading policies
    still run) but never broadcast; the outermost cache call broadcasts once
    after every action has run.
    """

    def __init__(self, cache_operations: CacheOperations) -> None:
        self._cache_operations = cache_operations

    def evict(self, options: EvictOptions) -> bool:
        return self._cache_operations.evict(dataclasses.replace(options, broadcast=False))

    def modify(self, options: ModifyOptions) -> bool:
        return self._cache_operations.modify(dataclasses.replace(options, broadcast=False))

    def read_field(self, field_name: str, from_: Mapping[str, Any] | None = None) -> Any:
        return self._cache_operations.read_field(field_name, from_)


class InvalidationPolicyManager:
    """Runs TTL checks and cascading write/evict policies against the type map."""

    def __init__(
        self,
        policies: InvalidationPolicies,
        entity_type_map: EntityTypeMap,
        cache_operations: CacheOperations,
        clock: Clock | None = None,
    ) -> None:
        self.policies = policies
        self.entity_type_map = entity_type_map
        self.clock: Clock = clock or now_ms
        self.muted_cache_operations = PolicyActionCacheOperations(cache_operations)
        self._policy_action_storage: dict[str, dict[str, Any]] = {}
        self._registries: dict[tuple[str, LifecycleEvent], PolicyActionRegistry] = {}

        for typename, type_policy in policies.types.items():
            for lifecycle_event in LifecycleEvent:
                actions = type_policy.actions_for(lifecycle_event)
                if actions:
                    self._registries[(typename, lifecycle_event)] = (
                        PolicyActionRegistry.from_mapping(actions)
                    )

        self._active_events = self._initial_activation()

    def _initial_activation(self) -> set[PolicyEvent]:
        active: set[PolicyEvent] = set()
        if self.policies.time_to_live or any(
            type_policy.time_to_live for type_policy in self.policies.types.values()
        ):
            active.add(PolicyEvent.READ)
        if any(event is LifecycleEvent.ON_WRITE for _typename, event in self._registries):
            active.add(PolicyEvent.WRITE)
        if any(event is LifecycleEvent.ON_EVICT for _typename, event in self._registries):
            active.add(PolicyEvent.EVICT)
        return active

    def _get_policy(self, typename: str) -> TypePolicy | None:
        return self.policies.types.get(typename)

    def get_policy_action_storage(self, identifier: str) -> dict[str, Any]:
        """Scratch storage for ``identifier``, created on first use."""
        return self._policy_action_storage.setdefault(identifier, {})

    def _run_policy_event(
        self, typename: str, lifecycle_event: LifecycleEvent, meta: PolicyActionFields
    ) -> None:
        registry = self._registries.get((typename, lifecycle_event))
        if not registry:
            return

        cache_operations = self.muted_cache_operations

        if registry.default is not None:
            registry.default(
                cache_operations,
                PolicyActionEntity(
                    storage=self.get_policy_action_storage(
                        f"{DEFAULT_POLICY_ACTION_KEY}:{typename}"
                    ),
                    parent=meta,
                ),
            )

        for related_typename, action in registry.actions.items():
            # Snapshot first: actions may evict the entities being iterated.
            entities = list(self.entity_type_map.read_entities_by_type(related_typename).values())
            if entities:
                logger.debug(
                    "Running %s policy of %s against %d %s entities",
                    lifecycle_event.value,
                    typename,
                    len(entities),
                    related_typename,
                )

            for entity in entities:
                if entity.store_field_names is not None:
                    for store_field_name, entry in list(entity.store_field_names.entries.items()):
                        action(
                            cache_operations,
                            PolicyActionEntity(
                                id=entity.data_id,
                                ref=make_reference(entity.data_id),
                                field_name=entity.field_name,
                                store_field_name=store_field_name,
                                variables=entry.variables,
                                args=entry.args,
                                storage=self.get_policy_action_storage(store_field_name),
                                parent=meta,
                            ),
                        )
                else:
                    action(
                        cache_operations,
                        PolicyActionEntity(
                            id=entity.data_id,
                            ref=make_reference(entity.data_id),
                            storage=self.get_policy_action_storage(entity.data_id),
                            parent=meta,
                        ),
                    )

    def run_write_policy(self, typename: str, meta: PolicyActionFields) -> None:
        self._run_policy_event(typename, LifecycleEvent.ON_WRITE, meta)

    def run_evict_policy(self, typename: str, meta: PolicyActionFields) -> None:
        self._run_policy_event(typename, LifecycleEvent.ON_EVICT, meta)

    def get_time_to_live(self, typename: str) -> int | None:
        policy = self._get_policy(typename)
        return (policy.time_to_live if policy else None) or self.policies.time_to_live

    def get_renewal_policy_for_type(self, typename: str) -> RenewalPolicy:
        policy = self._get_policy(typename)
        if policy is not None and policy.renewal_policy is not None:
            return policy.renewal_policy
        return self.policies.renewal_policy or RenewalPolicy.WRITE_ONLY

    def run_read_policy(
        self,
        typename: str,
        data_id: str,
        field_name: str | None = None,
        store_field_name: str | None = None,
        report_only: bool = False,
    ) -> bool:
        """Check an entity (or root field variant) against its time-to-live.

        Identities that are not indexed yet, such as a query field whose network
        response has not been merged, are never considered expired.

        Returns:
            Whether the entity is expired. Expired entities are evicted unless
            ``report_only`` is set.
        """
        entity = self.entity_type_map.read_entity_by_id(make_entity_id(data_id, field_name))
        if entity is None:
            return False

        if store_field_name and entity.store_field_names is not None:
            entry = entity.store_field_names.entries.get(store_field_name)
            if entry is None:
                return False
            cache_time = entry.cache_time
        else:
            cache_time = entity.cache_time

        time_to_live = self.get_time_to_live(typename)
        if cache_time is None or not time_to_live:
            return False
        if self.clock() - cache_time <= time_to_live:
            return False

        if not report_only:
            logger.debug(
                "Evicting expired %s entity %s",
                typename,
                make_entity_id(data_id, store_field_name),
            )
            self.muted_cache_operations.evict(
                EvictOptions(id=data_id, field_name=store_field_name)
            )
        return True

    def activate_policies(self, *events: PolicyEvent | str) -> None:
        for event in events:
            self._active_events.add(PolicyEvent.parse(event))

    def deactivate_policies(self, *events: PolicyEvent | str) -> None:
        for event in events:
            self._active_events.discard(PolicyEvent.parse(event))

    def is_policy_event_active(self, event: PolicyEvent | str) -> bool:
        return PolicyEvent.parse(event) in self._active_events
