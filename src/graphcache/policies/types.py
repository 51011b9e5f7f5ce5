"""Invalidation policy configuration and policy action types.

Example configuration::

    InvalidationPolicies.parse({
        "timeToLive": 3_600_000,
        "types": {
            "Employee": {"timeToLive": 60_000, "renewalPolicy": "access-and-write"},
            "DeleteEmployeesResponse": {
                "onWrite": {
                    "Employee": lambda cache, entity: cache.evict(
                        EvictOptions(id=entity.id, field_name=entity.field_name)
                    ),
                },
            },
        },
    })
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from graphcache.errors import PolicyConfigError, UnknownPolicyEventError
from graphcache.store.types import EvictOptions, ModifyOptions

if TYPE_CHECKING:
    from graphcache.config import Settings
    from graphcache.policies.manager import PolicyActionCacheOperations

DEFAULT_POLICY_ACTION_KEY = "__default"


class PolicyEvent(str, Enum):
    """Cache events that trigger invalidation policies."""

    READ = "Read"
    WRITE = "Write"
    EVICT = "Evict"

    @classmethod
    def parse(cls, value: "PolicyEvent | str") -> "PolicyEvent":
        if isinstance(value, PolicyEvent):
            return value
        for event in cls:
            if event.value.lower() == str(value).lower():
                return event
        raise UnknownPolicyEventError(f"Unknown policy event: {value!r}")


class LifecycleEvent(str, Enum):
    """Lifecycle hooks a type policy can declare."""

    ON_WRITE = "onWrite"
    ON_EVICT = "onEvict"


class RenewalPolicy(str, Enum):
    """Which operations reset an entity's cache time."""

    ACCESS_ONLY = "access-only"
    ACCESS_AND_WRITE = "access-and-write"
    WRITE_ONLY = "write-only"
    NONE = "none"

    @property
    def renews_on_access(self) -> bool:
        return self in (RenewalPolicy.ACCESS_ONLY, RenewalPolicy.ACCESS_AND_WRITE)

    @property
    def renews_on_write(self) -> bool:
        return self in (RenewalPolicy.WRITE_ONLY, RenewalPolicy.ACCESS_AND_WRITE)


@dataclass
class PolicyActionFields:
    """Description of an entity (or root field) involved in a policy run."""

    id: str | None = None
    ref: dict[str, str] | None = None
    field_name: str | None = None
    store_field_name: str | None = None
    variables: dict[str, Any] | None = None
    args: dict[str, Any] | None = None


@dataclass
class PolicyActionEntity(PolicyActionFields):
    """Argument passed to a policy action.

    ``storage`` is scratch state that persists across invocations for the same
    entity id (or store-field key); ``parent`` describes the entity whose
    write or eviction triggered the action.
    """

    storage: dict[str, Any] = field(default_factory=dict)
    parent: PolicyActionFields | None = None


PolicyAction = Callable[["PolicyActionCacheOperations", PolicyActionEntity], None]


class CacheOperations(Protocol):
    """Cache operations made available to policy actions."""

    def evict(self, options: EvictOptions) -> bool: ...

    def modify(self, options: ModifyOptions) -> bool: ...

    def read_field(self, field_name: str, from_: Mapping[str, Any] | None = None) -> Any: ...


@dataclass
class PolicyActionRegistry:
    """Actions of one lifecycle hook, keyed by related typename."""

    actions: dict[str, PolicyAction] = field(default_factory=dict)
    default: PolicyAction | None = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, PolicyAction]) -> "PolicyActionRegistry":
        actions = {
            typename: action
            for typename, action in mapping.items()
            if typename != DEFAULT_POLICY_ACTION_KEY
        }
        return cls(actions=actions, default=mapping.get(DEFAULT_POLICY_ACTION_KEY))

    def __bool__(self) -> bool:
        return bool(self.actions) or self.default is not None


class TypePolicy(BaseModel):
    """Invalidation policy for a single typename."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    time_to_live: int | None = Field(default=None, ge=0, alias="timeToLive")
    renewal_policy: RenewalPolicy | None = Field(default=None, alias="renewalPolicy")
    on_write: dict[str, Callable[..., Any]] | None = Field(default=None, alias="onWrite")
    on_evict: dict[str, Callable[..., Any]] | None = Field(default=None, alias="onEvict")

    def actions_for(self, event: LifecycleEvent) -> dict[str, Callable[..., Any]] | None:
        return self.on_write if event is LifecycleEvent.ON_WRITE else self.on_evict


class InvalidationPolicies(BaseModel):
    """Global defaults plus per-type invalidation policies."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    time_to_live: int | None = Field(default=None, ge=0, alias="timeToLive")
    renewal_policy: RenewalPolicy | None = Field(default=None, alias="renewalPolicy")
    types: dict[str, TypePolicy] = Field(default_factory=dict)

    @classmethod
    def parse(
        cls, value: "InvalidationPolicies | Mapping[str, Any] | None"
    ) -> "InvalidationPolicies":
        """Validate a configuration mapping.

        Raises:
            PolicyConfigError: If the configuration is structurally invalid.
        """
        if isinstance(value, InvalidationPolicies):
            return value
        try:
            return cls.model_validate(dict(value or {}))
        except ValidationError as exc:
            raise PolicyConfigError(str(exc)) from exc

    @classmethod
    def from_settings(cls, settings: "Settings") -> "InvalidationPolicies":
        return cls.parse(
            {
                "timeToLive": settings.default_time_to_live,
                "renewalPolicy": settings.default_renewal_policy,
            }
        )
