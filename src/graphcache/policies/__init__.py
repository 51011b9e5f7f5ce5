"""Invalidation policy configuration and execution."""

from graphcache.policies.manager import InvalidationPolicyManager, PolicyActionCacheOperations
from graphcache.policies.types import (
    DEFAULT_POLICY_ACTION_KEY,
    InvalidationPolicies,
    LifecycleEvent,
    PolicyAction,
    PolicyActionEntity,
    PolicyActionFields,
    PolicyActionRegistry,
    PolicyEvent,
    RenewalPolicy,
    TypePolicy,
)

__all__ = [
    "DEFAULT_POLICY_ACTION_KEY",
    "InvalidationPolicies",
    "InvalidationPolicyManager",
    "LifecycleEvent",
    "PolicyAction",
    "PolicyActionCacheOperations",
    "PolicyActionEntity",
    "PolicyActionFields",
    "PolicyActionRegistry",
    "PolicyEvent",
    "RenewalPolicy",
    "TypePolicy",
]
