from __future__ import annotations

from typing import Any

import orjson

from graphcache.errors import InvalidSnapshotError

SNAPSHOT_ORJSON_OPTIONS = orjson.OPT_NON_STR_KEYS | orjson.OPT_SORT_KEYS


def dump_snapshot(snapshot: dict[str, Any]) -> bytes:
    """Serialize an extracted cache snapshot to canonical JSON bytes."""
    return orjson.dumps(snapshot, option=SNAPSHOT_ORJSON_OPTIONS)


def load_snapshot(data: bytes | str) -> dict[str, Any]:
    """Parse snapshot bytes produced by ``dump_snapshot``."""
    try:
        snapshot = orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise InvalidSnapshotError(f"Snapshot is not valid JSON: {exc}") from exc
    if not isinstance(snapshot, dict):
        raise InvalidSnapshotError("Snapshot must be a JSON object")
    return snapshot
