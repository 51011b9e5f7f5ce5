"""Exceptions raised by graphcache.

Missing identities are never errors: reading, renewing or evicting something
that is not indexed is a no-op. Exceptions raised by user policy actions are
not wrapped and propagate unchanged out of the public call that triggered them.
"""

from __future__ import annotations


class GraphCacheError(Exception):
    """Base exception for graphcache errors."""

    pass


class PolicyConfigError(GraphCacheError):
    """Invalidation policy configuration could not be validated."""

    pass


class UnknownPolicyEventError(GraphCacheError, ValueError):
    """A policy event name did not match Read, Write or Evict."""

    pass


class InvalidSnapshotError(GraphCacheError):
    """A persisted invalidation payload could not be decoded."""

    pass


class CollectionsDisabledError(GraphCacheError, RuntimeError):
    """A collection operation was used on a cache created without collections."""

    pass
