from __future__ import annotations

import re
from typing import Any, Final

import orjson

ROOT_QUERY: Final[str] = "ROOT_QUERY"
ROOT_MUTATION: Final[str] = "ROOT_MUTATION"

REF_KEY: Final[str] = "__ref"
TYPENAME_KEY: Final[str] = "__typename"

_FIELD_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[_a-z][_0-9a-z]*", re.IGNORECASE)

ARGS_ORJSON_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS


def is_query(data_id: str | None) -> bool:
    """Whether the identity is one of the root operation containers."""
    return data_id == ROOT_QUERY or data_id == ROOT_MUTATION


def make_entity_id(data_id: str, field_name: str | None = None) -> str:
    """Return the index identity for a store entity.

    Normalized entities are indexed by their data id (``Employee:1``); root
    fields are indexed by the root container plus the field name
    (``ROOT_QUERY.employees``).
    """
    if is_query(data_id) and field_name:
        return f"{data_id}.{field_name}"
    return data_id


def field_name_from_store_name(store_field_name: str) -> str:
    """Strip any encoded arguments from a store field name."""
    match = _FIELD_NAME_RE.match(store_field_name)
    return match.group(0) if match else store_field_name


def encode_args(args: dict[str, Any]) -> str:
    """Canonical JSON for field arguments (sorted keys, no whitespace)."""
    return orjson.dumps(args, option=ARGS_ORJSON_OPTIONS).decode("utf-8")


def make_store_field_name(field_name: str, args: dict[str, Any] | None = None) -> str:
    """Build the on-store key for a field, encoding its arguments if any."""
    if not args:
        return field_name
    return f"{field_name}({encode_args(args)})"


def make_reference(data_id: str) -> dict[str, str]:
    return {REF_KEY: data_id}


def is_reference(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get(REF_KEY), str)
