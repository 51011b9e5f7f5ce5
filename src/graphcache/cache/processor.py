"""Runs invalidation policies over the nested objects of read and write results."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from graphcache.core.ids import (
    TYPENAME_KEY,
    field_name_from_store_name,
    is_query,
    make_entity_id,
    make_reference,
)
from graphcache.entity_store.type_map import EntityTypeMap
from graphcache.entity_store.types import TypeMapEntity
from graphcache.policies.manager import InvalidationPolicyManager
from graphcache.policies.types import PolicyActionFields
from graphcache.store.base import NormalizedStore
from graphcache.store.types import ReadOptions, WriteOptions, selections_for_result

logger = logging.getLogger(__name__)


class ReadResultStatus(IntEnum):
    EVICTED = 0
    INCOMPLETE = 1
    COMPLETE = 2


def _as_child_status(status: ReadResultStatus) -> ReadResultStatus:
    # An evicted child leaves its container incomplete, not evicted.
    return ReadResultStatus.INCOMPLETE if status is ReadResultStatus.EVICTED else status


@dataclass
class _RootField:
    result_key: str
    field_name: str
    args: dict[str, Any] | None = None
    variables: dict[str, Any] | None = None
    store_field_name: str | None = None


class CacheResultProcessor:
    """Applies read, renewal and write policies to result trees."""

    def __init__(
        self,
        store: NormalizedStore,
        entity_type_map: EntityTypeMap,
        policy_manager: InvalidationPolicyManager,
    ) -> None:
        self.store = store
        self.entity_type_map = entity_type_map
        self.policy_manager = policy_manager

    def _root_fields(
        self, fields: Any, variables: dict[str, Any] | None, result: dict[str, Any]
    ) -> list[_RootField]:
        if fields is None:
            # Unselected reads are keyed by store-field name.
            return [
                _RootField(
                    result_key=key,
                    field_name=field_name_from_store_name(key),
                    store_field_name=key,
                )
                for key in result
                if key != TYPENAME_KEY
            ]
        return [
            _RootField(
                result_key=selection.result_key,
                field_name=selection.name,
                args=selection.resolve_args(variables),
                variables=selection.used_variables(variables),
            )
            for selection in selections_for_result(fields, result)
        ]

    def _store_field_names(
        self, data_id: str, entity: TypeMapEntity, root_field: _RootField
    ) -> list[str]:
        """Query-scoped and entity-scoped store-field keys of a root field."""
        if root_field.store_field_name is not None:
            return [root_field.store_field_name]
        root_typename = self.store.root_typenames_by_id.get(data_id)
        candidates = [
            self.store.get_store_field_name(root_typename, root_field.field_name, root_field.args),
            self.store.get_store_field_name(entity.typename, root_field.field_name, root_field.args),
        ]
        return list(dict.fromkeys(candidates))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _is_expired_on_read(
        self,
        typename: str,
        data_id: str,
        field_name: str | None = None,
        store_field_names: list[str] | None = None,
    ) -> bool:
        if self.policy_manager.get_renewal_policy_for_type(typename).renews_on_access:
            for store_field_name in store_field_names or [None]:
                self.entity_type_map.renew_entity(data_id, store_field_name)

        if not store_field_names:
            return self.policy_manager.run_read_policy(typename, data_id)
        # Both key forms are evaluated, without short-circuiting.
        expired = [
            self.policy_manager.run_read_policy(typename, data_id, field_name, store_field_name)
            for store_field_name in store_field_names
        ]
        return any(expired)

    def _process_read_node(self, value: Any) -> ReadResultStatus:
        if isinstance(value, dict):
            aggregate = ReadResultStatus.COMPLETE
            for key in list(value):
                status = self._process_read_node(value[key])
                if status is ReadResultStatus.EVICTED:
                    del value[key]
                aggregate = min(aggregate, _as_child_status(status))

            typename = value.get(TYPENAME_KEY)
            if typename:
                data_id = self.store.identify(value)
                if data_id and self._is_expired_on_read(typename, data_id):
                    return ReadResultStatus.EVICTED
            return aggregate

        if isinstance(value, list):
            statuses = [self._process_read_node(item) for item in value]
            if ReadResultStatus.EVICTED in statuses:
                value[:] = [
                    item
                    for item, status in zip(value, statuses)
                    if status is not ReadResultStatus.EVICTED
                ]
            return min(
                (_as_child_status(status) for status in statuses),
                default=ReadResultStatus.COMPLETE,
            )

        return ReadResultStatus.COMPLETE

    def process_read_result(self, result: Any, options: ReadOptions) -> ReadResultStatus:
        """Prune expired data from ``result`` in place and report its status."""
        if not isinstance(result, dict):
            return ReadResultStatus.COMPLETE

        data_id = options.root_id
        if not is_query(data_id):
            aggregate = ReadResultStatus.COMPLETE
            for key in list(result):
                status = self._process_read_node(result[key])
                if status is ReadResultStatus.EVICTED:
                    del result[key]
                aggregate = min(aggregate, _as_child_status(status))

            entity = self.entity_type_map.read_entity_by_id(data_id)
            typename = result.get(TYPENAME_KEY) or (entity.typename if entity else None)
            if typename and self._is_expired_on_read(typename, data_id):
                return ReadResultStatus.EVICTED
            return aggregate

        aggregate = ReadResultStatus.COMPLETE
        for root_field in self._root_fields(options.fields, options.variables, result):
            status = ReadResultStatus.COMPLETE
            if root_field.result_key in result:
                status = self._process_read_node(result[root_field.result_key])
                if status is ReadResultStatus.EVICTED:
                    del result[root_field.result_key]

            entity = self.entity_type_map.read_entity_by_id(
                make_entity_id(data_id, root_field.field_name)
            )
            if entity is not None and self._is_expired_on_read(
                entity.typename,
                data_id,
                root_field.field_name,
                self._store_field_names(data_id, entity, root_field),
            ):
                logger.debug(
                    "Pruned expired root field %s from read result",
                    make_entity_id(data_id, root_field.field_name),
                )
                result.pop(root_field.result_key, None)
                aggregate = ReadResultStatus.INCOMPLETE
                continue

            aggregate = min(aggregate, _as_child_status(status))

        return aggregate

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _renew_on_write(
        self, typename: str, data_id: str, store_field_name: str | None = None
    ) -> None:
        if self.policy_manager.get_renewal_policy_for_type(typename).renews_on_write:
            self.entity_type_map.renew_entity(data_id, store_field_name)

    def _process_write_node(self, value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                self._process_write_node(item)
            return
        if not isinstance(value, dict):
            return

        for item in value.values():
            self._process_write_node(item)

        typename = value.get(TYPENAME_KEY)
        if not typename:
            return
        data_id = self.store.identify(value)
        if not data_id:
            return
        self._renew_on_write(typename, data_id)
        self.policy_manager.run_write_policy(
            typename, PolicyActionFields(id=data_id, ref=make_reference(data_id))
        )

    def process_write_result(self, options: WriteOptions) -> None:
        """Renew written entities and run their write policies, children first."""
        result = options.result
        data_id = options.data_id
        if not isinstance(result, dict):
            return

        # The written object itself is handled below, once.
        for item in result.values():
            self._process_write_node(item)

        if is_query(data_id):
            for root_field in self._root_fields(
                selections_for_result(options.fields, result), options.variables, result
            ):
                if root_field.result_key not in result:
                    continue
                entity = self.entity_type_map.read_entity_by_id(
                    make_entity_id(data_id, root_field.field_name)
                )
                if entity is None or entity.store_field_names is None:
                    continue

                indexed = entity.store_field_names.entries
                store_field_names = [
                    store_field_name
                    for store_field_name in self._store_field_names(data_id, entity, root_field)
                    if store_field_name in indexed
                ]
                for store_field_name in store_field_names:
                    # Record the variables at write time; merges only see the payload.
                    self.entity_type_map.write(
                        entity.typename,
                        data_id,
                        store_field_name,
                        variables=root_field.variables,
                        args=root_field.args,
                    )
                    self._renew_on_write(entity.typename, data_id, store_field_name)
                    self.policy_manager.run_write_policy(
                        entity.typename,
                        PolicyActionFields(
                            id=data_id,
                            ref=make_reference(data_id),
                            field_name=root_field.field_name,
                            store_field_name=store_field_name,
                            variables=root_field.variables,
                            args=root_field.args,
                        ),
                    )
            return

        entity = self.entity_type_map.read_entity_by_id(data_id)
        if entity is None:
            return
        self._renew_on_write(entity.typename, data_id)
        self.policy_manager.run_write_policy(
            entity.typename,
            PolicyActionFields(
                id=data_id, ref=make_reference(data_id), variables=options.variables
            ),
        )
