"""Option and result types exchanged with a normalized store.

Queries are described by plain ``FieldSelection`` trees rather than parsed
documents: a root read or write names its top-level fields, their arguments
(literal values or ``Variable`` references) and, optionally, nested
selections.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from graphcache.core.ids import ROOT_QUERY


class _Delete:
    """Sentinel returned by a modifier to delete the field."""

    _instance: "_Delete | None" = None

    def __new__(cls) -> "_Delete":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE"


DELETE: Final[_Delete] = _Delete()


@dataclass(frozen=True, slots=True)
class Variable:
    """Reference to an operation variable used as a field argument."""

    name: str


@dataclass(slots=True)
class FieldSelection:
    """A selected field, optionally aliased, with arguments and sub-selections."""

    name: str
    alias: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)
    selections: list[FieldSelection] | None = None

    @property
    def result_key(self) -> str:
        return self.alias or self.name

    def resolve_args(self, variables: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Resolve arguments against the operation variables.

        Variable arguments whose variable was not supplied are omitted.
        Returns None when the field declares no arguments.
        """
        if not self.arguments:
            return None
        variables = variables or {}
        resolved: dict[str, Any] = {}
        for arg_name, value in self.arguments.items():
            if isinstance(value, Variable):
                if value.name in variables:
                    resolved[arg_name] = variables[value.name]
            else:
                resolved[arg_name] = value
        return resolved

    def used_variables(self, variables: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Subset of the supplied variables that this field's arguments reference."""
        if not self.arguments:
            return None
        variables = variables or {}
        return {
            value.name: variables[value.name]
            for value in self.arguments.values()
            if isinstance(value, Variable) and value.name in variables
        }


@dataclass(slots=True)
class ReadOptions:
    """Options for ``read``/``diff``.

    ``root_id`` is ``ROOT_QUERY`` for query reads or an entity id for
    fragment-style reads. ``fields=None`` selects every stored field.
    """

    fields: list[FieldSelection] | None = None
    variables: dict[str, Any] | None = None
    root_id: str = ROOT_QUERY
    optimistic: bool = True
    return_partial_data: bool = False


@dataclass(slots=True)
class DiffResult:
    result: Any
    complete: bool
    missing: list[str] = field(default_factory=list)


@dataclass(slots=True)
class WriteOptions:
    """Options for ``write``.

    ``data_id`` is a root container for query/mutation results or an entity id
    for fragment-style writes. When ``fields`` is None the selection is
    inferred from the keys of ``result``.
    """

    result: dict[str, Any]
    data_id: str = ROOT_QUERY
    fields: list[FieldSelection] | None = None
    variables: dict[str, Any] | None = None
    broadcast: bool = True


@dataclass(slots=True)
class EvictOptions:
    """Options for ``evict``. An empty ``id`` evicts nothing."""

    id: str | None = ROOT_QUERY
    field_name: str | None = None
    args: dict[str, Any] | None = None
    broadcast: bool = True


@dataclass(slots=True)
class ModifierDetails:
    field_name: str
    store_field_name: str
    read_field: Callable[..., Any]
    DELETE: _Delete = DELETE


Modifier = Callable[[Any, ModifierDetails], Any]


@dataclass(slots=True)
class ModifyOptions:
    """Options for ``modify``; ``fields`` maps bare or store field names to modifiers."""

    fields: dict[str, Modifier]
    id: str = ROOT_QUERY
    broadcast: bool = True


WatchCallback = Callable[[DiffResult], None]


def selections_for_result(
    fields: list[FieldSelection] | None, result: Mapping[str, Any]
) -> list[FieldSelection]:
    """Return the explicit selections, or one bare selection per result key."""
    if fields is not None:
        return fields
    return [FieldSelection(name=key) for key in result if key != "__typename"]
