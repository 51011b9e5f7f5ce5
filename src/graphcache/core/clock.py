"""Millisecond wall clock used for cache-time bookkeeping.

Every component that stamps or compares cache times takes a ``Clock`` so that
tests (and replays) can drive time explicitly.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return time.time_ns() // 1_000_000
