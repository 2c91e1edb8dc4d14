"""Capability catalog, RBAC grants and the permission gate."""

from uniflow.platform.auth.capabilities import (
    CAPABILITIES,
    Action,
    Feature,
    UnknownCapabilityError,
    resolve,
)
from uniflow.platform.auth.gate import (
    Decision,
    DecisionReason,
    PermissionDenied,
    PermissionGate,
    PlanDenied,
    RbacDenied,
    can,
    permission_gate,
    require,
)
from uniflow.platform.auth.rbac import (
    PLATFORM_OPERATORS,
    Group,
    PermissionGrant,
    Principal,
    Role,
    UserType,
    rbac_allows,
)

__all__ = [
    "CAPABILITIES",
    "PLATFORM_OPERATORS",
    "Action",
    "Decision",
    "DecisionReason",
    "Feature",
    "Group",
    "PermissionDenied",
    "PermissionGate",
    "PermissionGrant",
    "PlanDenied",
    "Principal",
    "RbacDenied",
    "Role",
    "UnknownCapabilityError",
    "UserType",
    "can",
    "permission_gate",
    "rbac_allows",
    "require",
    "resolve",
]
