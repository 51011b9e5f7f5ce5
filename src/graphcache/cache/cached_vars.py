"""Variables whose values are persisted as entities in the cache."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from graphcache.store.types import FieldSelection, ReadOptions, WriteOptions

if TYPE_CHECKING:
    from graphcache.cache.invalidation_cache import InvalidationPolicyCache

logger = logging.getLogger(__name__)

CACHED_VAR_TYPENAME = "CachedReactiveVar"

_VALUE_FIELDS = [FieldSelection("id"), FieldSelection("value")]

T = TypeVar("T")

_UNSET: Any = object()


class CachedVar(Generic[T]):
    """A value holder: call with no argument to read, with one to set.

    ``on_next_change`` listeners fire once, on the next change only.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: list[Callable[[T], None]] = []

    def __call__(self, value: T = _UNSET) -> T:
        if value is _UNSET:
            return self._value
        if value != self._value:
            self._value = value
            listeners, self._listeners = self._listeners, []
            for listener in listeners:
                listener(value)
        return self._value

    def on_next_change(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove


@dataclass
class _Registration:
    var: CachedVar[Any]
    default: Any


class CachedVarRegistry:
    """Registry of cached variables owned by one cache instance."""

    def __init__(self, cache: InvalidationPolicyCache) -> None:
        self.cache = cache
        self._registered: dict[str, _Registration] = {}

    def _entity_id(self, var_id: str) -> str:
        return self.cache.identify({"__typename": CACHED_VAR_TYPENAME, "id": var_id}) or (
            f"{CACHED_VAR_TYPENAME}:{var_id}"
        )

    def read(self, var_id: str) -> Any:
        data = self.cache.read(
            ReadOptions(
                fields=_VALUE_FIELDS,
                root_id=self._entity_id(var_id),
                return_partial_data=True,
            )
        )
        return data.get("value") if data else None

    def write(self, var_id: str, value: Any) -> None:
        self.cache.write(
            WriteOptions(
                result={"__typename": CACHED_VAR_TYPENAME, "id": var_id, "value": value},
                data_id=self._entity_id(var_id),
                fields=_VALUE_FIELDS,
            )
        )

    def _watch(self, var_id: str, var: CachedVar[Any]) -> None:
        # Listeners fire once, so each change re-subscribes.
        def on_change(value: Any) -> None:
            self.write(var_id, value)
            self._watch(var_id, var)

        var.on_next_change(on_change)

    def register(self, var_id: str, default: T) -> CachedVar[T]:
        """Create a variable seeded from the cache, or from ``default`` when absent."""
        cached = self.read(var_id)
        var: CachedVar[T] = CachedVar(cached if cached is not None else default)

        if var_id in self._registered:
            logger.warning(
                "Duplicate cached variable with id %s; cached variables should not share an id",
                var_id,
            )
        self._registered[var_id] = _Registration(var=var, default=default)

        if cached is None:
            self.write(var_id, default)
        self._watch(var_id, var)
        return var

    def reset(self) -> None:
        """Re-read every variable after the cache contents were replaced."""
        for var_id, registration in self._registered.items():
            cached = self.read(var_id)
            registration.var(cached if cached is not None else registration.default)

    def __contains__(self, var_id: object) -> bool:
        return var_id in self._registered

    def __len__(self) -> int:
        return len(self._registered)
