"""Bookkeeping records kept by the entity type map.

The persisted (dict) form keeps the camelCase layout used in exported cache
snapshots::

    {
        "dataId": "ROOT_QUERY",
        "typename": "EmployeesResponse",
        "fieldName": "employees",
        "storeFieldNames": {
            "__size": 1,
            "entries": {'employees({"name":"Ada"})': {"cacheTime": 0, "args": {"name": "Ada"}}},
        },
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from graphcache.errors import InvalidSnapshotError


@dataclass
class StoreFieldEntry:
    """Cache time and call arguments of one store-field variant of a root field."""

    cache_time: int
    variables: dict[str, Any] | None = None
    args: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"cacheTime": self.cache_time}
        if self.variables is not None:
            data["variables"] = self.variables
        if self.args is not None:
            data["args"] = self.args
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreFieldEntry":
        return cls(
            cache_time=data["cacheTime"],
            variables=data.get("variables"),
            args=data.get("args"),
        )


@dataclass
class StoreFieldNames:
    size: int = 0
    entries: dict[str, StoreFieldEntry] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "__size": self.size,
            "entries": {key: entry.to_dict() for key, entry in self.entries.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreFieldNames":
        entries = {key: StoreFieldEntry.from_dict(entry) for key, entry in data["entries"].items()}
        return cls(size=data.get("__size", len(entries)), entries=entries)


@dataclass
class TypeMapEntity:
    """Index record for a normalized entity or a root query field."""

    data_id: str
    typename: str
    field_name: str | None = None
    cache_time: int | None = None
    store_field_names: StoreFieldNames | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"dataId": self.data_id, "typename": self.typename}
        if self.field_name is not None:
            data["fieldName"] = self.field_name
        if self.cache_time is not None:
            data["cacheTime"] = self.cache_time
        if self.store_field_names is not None:
            data["storeFieldNames"] = self.store_field_names.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TypeMapEntity":
        try:
            store_field_names = data.get("storeFieldNames")
            return cls(
                data_id=data["dataId"],
                typename=data["typename"],
                field_name=data.get("fieldName"),
                cache_time=data.get("cacheTime"),
                store_field_names=(
                    StoreFieldNames.from_dict(store_field_names)
                    if store_field_names is not None
                    else None
                ),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise InvalidSnapshotError(f"Malformed type map entity: {data!r}") from exc


EntitiesById = dict[str, TypeMapEntity]
EntitiesByType = dict[str, dict[str, TypeMapEntity]]


@dataclass
class ExtractedTypeMap:
    entities_by_id: EntitiesById
    entities_by_type: EntitiesByType
