"""In-memory normalized store.

Reference implementation of ``NormalizedStore`` for single-process use and
tests. Objects carrying ``__typename`` plus ``id`` (or ``_id``) are stored
once under ``Typename:id`` and replaced by ``{"__ref": ...}`` wherever they
appear; root fields are stored on the root containers under store-field keys
that encode their arguments.

Optimistic writes go to layers stacked over the root data:

    with store.optimistic("create-employee"):
        cache.write(options)  # lands in the layer, not in root data
    store.remove_optimistic("create-employee")
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from graphcache.core.ids import (
    REF_KEY,
    ROOT_MUTATION,
    ROOT_QUERY,
    TYPENAME_KEY,
    field_name_from_store_name,
    is_reference,
    make_reference,
    make_store_field_name,
)
from graphcache.store.base import DiffFunction, NormalizedStore
from graphcache.store.types import (
    DELETE,
    DiffResult,
    EvictOptions,
    FieldSelection,
    ModifierDetails,
    ModifyOptions,
    ReadOptions,
    WatchCallback,
    WriteOptions,
    selections_for_result,
)

logger = logging.getLogger(__name__)

DEFAULT_ROOT_TYPENAMES: dict[str, str] = {ROOT_QUERY: "Query", ROOT_MUTATION: "Mutation"}

MergeFunction = Callable[[str, Mapping[str, Any]], None]


@dataclass
class _Watch:
    options: ReadOptions
    callback: WatchCallback
    last: DiffResult | None = None


class InMemoryStore(NormalizedStore):
    """Dict-backed normalized store.

    Args:
        root_typenames: Root container ids mapped to their typenames.
        key_args: ``"Typename.field"`` mapped to the argument names that take
            part in that field's store-field key; other arguments are ignored
            when building the key.
    """

    def __init__(
        self,
        root_typenames: Mapping[str, str] | None = None,
        key_args: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self._root_typenames = dict(root_typenames or DEFAULT_ROOT_TYPENAMES)
        self._key_args = {key: list(names) for key, names in (key_args or {}).items()}
        self._data: dict[str, dict[str, Any]] = {}
        self._layers: list[tuple[str, dict[str, dict[str, Any]]]] = []
        self._active_layer: dict[str, dict[str, Any]] | None = None
        self._watches: dict[int, _Watch] = {}
        self._next_watch_id = 0

    @property
    def root_typenames_by_id(self) -> Mapping[str, str]:
        return self._root_typenames

    def identify(self, obj: Mapping[str, Any]) -> str | None:
        if is_reference(obj):
            return obj[REF_KEY]
        typename = obj.get(TYPENAME_KEY)
        if not typename:
            return None
        for key in ("id", "_id"):
            value = obj.get(key)
            if value is not None:
                return f"{typename}:{value}"
        return None

    def get_store_field_name(
        self, typename: str | None, field_name: str, args: Mapping[str, Any] | None = None
    ) -> str:
        if not args:
            return field_name
        key_args = self._key_args.get(f"{typename}.{field_name}")
        if key_args is not None:
            args = {name: args[name] for name in key_args if name in args}
        return make_store_field_name(field_name, dict(args))

    def read_field(self, field_name: str, from_: Mapping[str, Any] | None = None) -> Any:
        source = from_ if from_ is not None else make_reference(ROOT_QUERY)
        obj = self._lookup(source[REF_KEY]) if is_reference(source) else source
        if obj is None:
            return None
        return obj.get(field_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _lookup(self, data_id: str, optimistic: bool = True) -> dict[str, Any] | None:
        obj = self._data.get(data_id)
        if optimistic:
            for _layer_id, layer in self._layers:
                patch = layer.get(data_id)
                if patch is not None:
                    obj = {**(obj or {}), **patch}
        return obj

    def _typename_of(self, data_id: str, obj: Mapping[str, Any]) -> str | None:
        return obj.get(TYPENAME_KEY) or self._root_typenames.get(data_id)

    def diff(self, options: ReadOptions) -> DiffResult:
        root_id = options.root_id
        root = self._lookup(root_id, options.optimistic)
        if root is None:
            return DiffResult(None, False, [root_id])

        missing: list[str] = []
        seen = frozenset({root_id})
        typename = self._typename_of(root_id, root)
        result: dict[str, Any] = {}
        if root_id not in self._root_typenames and typename:
            result[TYPENAME_KEY] = typename

        if options.fields is None:
            for key, value in root.items():
                if key != TYPENAME_KEY:
                    result[key] = self._denormalize(value, None, options.optimistic, missing, seen)
        else:
            for selection in options.fields:
                store_field_name = self.get_store_field_name(
                    typename, selection.name, selection.resolve_args(options.variables)
                )
                if store_field_name not in root:
                    missing.append(selection.result_key)
                    continue
                result[selection.result_key] = self._denormalize(
                    root[store_field_name], selection.selections, options.optimistic, missing, seen
                )

        return DiffResult(result, not missing, missing)

    def read(self, options: ReadOptions) -> Any:
        diff = self.diff(options)
        if diff.complete or options.return_partial_data:
            return diff.result
        return None

    def _denormalize(
        self,
        value: Any,
        selections: list[FieldSelection] | None,
        optimistic: bool,
        missing: list[str],
        seen: frozenset[str],
    ) -> Any:
        if isinstance(value, list):
            return [
                self._denormalize(item, selections, optimistic, missing, seen) for item in value
            ]
        if is_reference(value):
            ref_id = value[REF_KEY]
            if ref_id in seen:
                return dict(value)
            obj = self._lookup(ref_id, optimistic)
            if obj is None:
                missing.append(ref_id)
                return None
            return self._project(obj, selections, optimistic, missing, seen | {ref_id})
        if isinstance(value, dict):
            return self._project(value, selections, optimistic, missing, seen)
        return value

    def _project(
        self,
        obj: Mapping[str, Any],
        selections: list[FieldSelection] | None,
        optimistic: bool,
        missing: list[str],
        seen: frozenset[str],
    ) -> dict[str, Any]:
        projected: dict[str, Any] = {}
        if TYPENAME_KEY in obj:
            projected[TYPENAME_KEY] = obj[TYPENAME_KEY]
        if selections is None:
            for key, value in obj.items():
                if key != TYPENAME_KEY:
                    projected[key] = self._denormalize(value, None, optimistic, missing, seen)
            return projected
        for selection in selections:
            if selection.name == TYPENAME_KEY:
                continue
            if selection.name not in obj:
                missing.append(selection.result_key)
                continue
            projected[selection.result_key] = self._denormalize(
                obj[selection.name], selection.selections, optimistic, missing, seen
            )
        return projected

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write(self, options: WriteOptions) -> None:
        merge: MergeFunction = self.merge if self._active_layer is None else self._merge_layer
        data_id = options.data_id
        result = options.result

        if data_id in self._root_typenames:
            typename = self._root_typenames[data_id]
            incoming: dict[str, Any] = {TYPENAME_KEY: typename}
            for selection in selections_for_result(options.fields, result):
                if selection.result_key not in result:
                    continue
                store_field_name = self.get_store_field_name(
                    typename, selection.name, selection.resolve_args(options.variables)
                )
                incoming[store_field_name] = self._normalize(result[selection.result_key], merge)
        else:
            incoming = {key: self._normalize(value, merge) for key, value in result.items()}

        merge(data_id, incoming)

        if options.broadcast:
            self.broadcast_watches()

    def _normalize(self, value: Any, merge: MergeFunction) -> Any:
        if isinstance(value, list):
            return [self._normalize(item, merge) for item in value]
        if isinstance(value, dict):
            if is_reference(value):
                return dict(value)
            normalized = {key: self._normalize(item, merge) for key, item in value.items()}
            data_id = self.identify(value)
            if data_id is None:
                return normalized
            # Children are merged before their parents.
            merge(data_id, normalized)
            return make_reference(data_id)
        return value

    def _merge_layer(self, data_id: str, incoming: Mapping[str, Any]) -> None:
        assert self._active_layer is not None
        self._active_layer.setdefault(data_id, {}).update(copy.deepcopy(dict(incoming)))

    def evict(self, options: EvictOptions) -> bool:
        if not options.id:
            return False
        evicted = self.delete(options.id, options.field_name, options.args)
        if evicted and options.broadcast:
            self.broadcast_watches()
        return evicted

    def modify(self, options: ModifyOptions) -> bool:
        obj = self._data.get(options.id)
        if obj is None:
            return False

        changes: dict[str, Any] = {}
        deletions: list[str] = []
        for store_field_name, value in list(obj.items()):
            if store_field_name == TYPENAME_KEY:
                continue
            field_name = field_name_from_store_name(store_field_name)
            modifier = options.fields.get(store_field_name) or options.fields.get(field_name)
            if modifier is None:
                continue
            new_value = modifier(
                copy.deepcopy(value),
                ModifierDetails(
                    field_name=field_name,
                    store_field_name=store_field_name,
                    read_field=self.read_field,
                ),
            )
            if new_value is DELETE:
                deletions.append(store_field_name)
            elif new_value != value:
                changes[store_field_name] = new_value

        if changes:
            self.merge(options.id, changes)
        for store_field_name in deletions:
            self.delete(options.id, store_field_name)

        modified = bool(changes or deletions)
        if modified and options.broadcast:
            self.broadcast_watches()
        return modified

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def extract(self, optimistic: bool = False) -> dict[str, Any]:
        if not optimistic:
            return copy.deepcopy(self._data)
        data_ids = list(self._data)
        for _layer_id, layer in self._layers:
            data_ids.extend(data_id for data_id in layer if data_id not in data_ids)
        return {data_id: copy.deepcopy(self._lookup(data_id)) for data_id in data_ids}

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        self.replace(copy.deepcopy(snapshot) if snapshot else None)

    # ------------------------------------------------------------------
    # Optimistic layers
    # ------------------------------------------------------------------

    @contextmanager
    def optimistic(self, layer_id: str) -> Iterator[None]:
        """Route writes made inside the block to a new optimistic layer."""
        layer: dict[str, dict[str, Any]] = {}
        self._layers.append((layer_id, layer))
        previous = self._active_layer
        self._active_layer = layer
        try:
            yield
        finally:
            self._active_layer = previous

    def remove_optimistic(self, layer_id: str) -> None:
        self._layers = [(lid, layer) for lid, layer in self._layers if lid != layer_id]
        self.broadcast_watches()

    def is_operating_on_root_data(self) -> bool:
        return self._active_layer is None

    # ------------------------------------------------------------------
    # Watches
    # ------------------------------------------------------------------

    def watch(self, options: ReadOptions, callback: WatchCallback) -> Callable[[], None]:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watches[watch_id] = _Watch(options=options, callback=callback)

        def unsubscribe() -> None:
            self._watches.pop(watch_id, None)

        return unsubscribe

    def broadcast_watches(self, diff: DiffFunction | None = None) -> None:
        run_diff = diff or self.diff
        for watch in list(self._watches.values()):
            result = run_diff(watch.options)
            if watch.last is not None and result == watch.last:
                continue
            watch.last = result
            watch.callback(result)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def merge(self, data_id: str, incoming: Mapping[str, Any]) -> None:
        self._data.setdefault(data_id, {}).update(copy.deepcopy(dict(incoming)))

    def delete(
        self,
        data_id: str,
        field_name: str | None = None,
        args: Mapping[str, Any] | None = None,
    ) -> bool:
        obj = self._data.get(data_id)
        if obj is None:
            return False
        if field_name is None:
            del self._data[data_id]
            return True

        store_field_name = (
            self.get_store_field_name(self._typename_of(data_id, obj), field_name, args)
            if args
            else field_name
        )
        # A bare field name removes every argument variant of the field.
        is_bare = field_name_from_store_name(store_field_name) == store_field_name
        targets = [
            key
            for key in obj
            if key != TYPENAME_KEY
            and (
                key == store_field_name
                or (is_bare and field_name_from_store_name(key) == store_field_name)
            )
        ]
        for key in targets:
            del obj[key]
        return bool(targets)

    def clear(self) -> None:
        self._data.clear()

    def replace(self, snapshot: dict[str, Any] | None) -> None:
        self.clear()
        for data_id, obj in (snapshot or {}).items():
            self.merge(data_id, obj)
        logger.debug("Replaced store contents with %d objects", len(self._data))
