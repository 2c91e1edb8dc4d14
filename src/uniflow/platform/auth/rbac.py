"""
Role based access control for CRM capabilities.

Grants are plain data validated against the capability catalog. Evaluation
follows the CRM's precedence: platform operators and tenant admins pass,
a user's custom permissions decide when they mention the feature, then the
user's roles, then the roles and permissions of the user's groups.
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from uniflow.platform.auth.capabilities import Action, Feature, resolve
from uniflow.platform.domain import SnapshotModel


class UserType(str, Enum):
    SAAS_OWNER = "SAAS_OWNER"
    SAAS_ADMIN = "SAAS_ADMIN"
    TENANT_ADMIN = "TENANT_ADMIN"
    USER = "USER"


PLATFORM_OPERATORS = frozenset({UserType.SAAS_OWNER, UserType.SAAS_ADMIN})
RBAC_BYPASS = PLATFORM_OPERATORS | {UserType.TENANT_ADMIN}


class PermissionGrant(SnapshotModel):
    """Feature -> allowed actions. ``manage`` implies every action of the feature."""

    permissions: dict[Feature, frozenset[Action]] = Field(default_factory=dict)

    @field_validator("permissions", mode="before")
    @classmethod
    def validate_catalog(cls, value: Any) -> dict[Feature, frozenset[Action]]:
        validated: dict[Feature, frozenset[Action]] = {}
        for feature, actions in (value or {}).items():
            # every catalog feature supports read, so this validates the key alone
            key, _ = resolve(feature, Action.READ)
            validated[key] = frozenset(resolve(key, action)[1] for action in actions)
        return validated

    @classmethod
    def of(cls, mapping: Mapping[str, Iterable[str]]) -> "PermissionGrant":
        return cls(permissions={feature: list(actions) for feature, actions in mapping.items()})

    def mentions(self, feature: Feature) -> bool:
        return feature in self.permissions

    def allows(self, feature: Feature, action: Action) -> bool:
        actions = self.permissions.get(feature, frozenset())
        return Action.MANAGE in actions or action in actions


class Role(SnapshotModel):
    name: str
    grant: PermissionGrant = PermissionGrant()


class Group(SnapshotModel):
    name: str
    roles: list[Role] = Field(default_factory=list)
    grant: PermissionGrant = PermissionGrant()


class Principal(SnapshotModel):
    """The user a capability check is made for, passed explicitly to every check."""

    user_id: str
    user_type: UserType = UserType.USER
    tenant_id: str | None = None
    roles: list[Role] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    custom_permissions: PermissionGrant | None = None

    @property
    def is_platform_operator(self) -> bool:
        return self.user_type in PLATFORM_OPERATORS


def rbac_allows(principal: Principal, feature: Feature | str, action: Action | str) -> bool:
    """RBAC side of a capability check; independent of the tenant's plan."""
    feature, action = resolve(feature, action)

    if principal.user_type in RBAC_BYPASS:
        return True

    custom = principal.custom_permissions
    if custom is not None and custom.mentions(feature):
        return custom.allows(feature, action)

    if any(role.grant.allows(feature, action) for role in principal.roles):
        return True

    for group in principal.groups:
        if any(role.grant.allows(feature, action) for role in group.roles):
            return True
        if group.grant.allows(feature, action):
            return True

    return False
