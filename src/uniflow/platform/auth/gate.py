"""
Permission gate.

Combines the RBAC grant with the tenant's entitlement. Both must allow the
action, and a refusal always says which side refused so callers can show
"upgrade your plan" rather than "you lack permission" (or the reverse).
"""

from enum import Enum
from typing import TYPE_CHECKING

import structlog

from uniflow.platform.auth.capabilities import Action, Feature, resolve
from uniflow.platform.auth.rbac import Principal, rbac_allows
from uniflow.platform.domain import SnapshotModel, UniflowError

if TYPE_CHECKING:
    from uniflow.platform.entitlements.models import Entitlement

logger = structlog.get_logger(__name__)


class DecisionReason(str, Enum):
    ALLOWED = "allowed"
    RBAC_DENIED = "rbac_denied"
    PLAN_DENIED = "plan_denied"


class Decision(SnapshotModel):
    allowed: bool
    reason: DecisionReason
    feature: Feature
    action: Action
    detail: str | None = None


class PermissionDenied(UniflowError):
    """Base for capability refusals."""

    default_code = "PERMISSION_DENIED"

    def __init__(self, decision: Decision, message: str, recovery_hint: str) -> None:
        super().__init__(
            message,
            status_code=403,
            context={
                "feature": decision.feature.value,
                "action": decision.action.value,
                "reason": decision.reason.value,
                "detail": decision.detail,
            },
            recovery_hint=recovery_hint,
        )
        self.decision = decision


class RbacDenied(PermissionDenied):
    default_code = "RBAC_DENIED"

    def __init__(self, decision: Decision) -> None:
        super().__init__(
            decision,
            f"You do not have permission to {decision.action.value} "
            f"{decision.feature.value}",
            recovery_hint="Ask a tenant administrator to grant this permission",
        )


class PlanDenied(PermissionDenied):
    default_code = "PLAN_DENIED"

    def __init__(self, decision: Decision) -> None:
        super().__init__(
            decision,
            f"Your subscription does not allow {decision.action.value} on "
            f"{decision.feature.value} ({decision.detail})",
            recovery_hint="Upgrade or renew the subscription to unlock this action",
        )


class PermissionGate:
    """``can`` / ``require`` for (feature, action) pairs."""

    def can(
        self,
        principal: Principal,
        feature: Feature | str,
        action: Action | str,
        entitlement: "Entitlement | None" = None,
    ) -> Decision:
        """
        Decide a capability check.

        RBAC is evaluated first. The plan applies to every principal acting
        inside a tenant; ``entitlement`` may be omitted only for platform
        operators acting outside any tenant.
        """
        feature, action = resolve(feature, action)

        if not rbac_allows(principal, feature, action):
            return Decision(
                allowed=False, reason=DecisionReason.RBAC_DENIED, feature=feature, action=action
            )

        if entitlement is None:
            if principal.is_platform_operator and principal.tenant_id is None:
                return Decision(
                    allowed=True, reason=DecisionReason.ALLOWED, feature=feature, action=action
                )
            return Decision(
                allowed=False,
                reason=DecisionReason.PLAN_DENIED,
                feature=feature,
                action=action,
                detail="no_entitlement",
            )

        plan = entitlement.allows(feature, action)
        if not plan.allowed:
            return Decision(
                allowed=False,
                reason=DecisionReason.PLAN_DENIED,
                feature=feature,
                action=action,
                detail=plan.detail.value if plan.detail else None,
            )
        return Decision(allowed=True, reason=DecisionReason.ALLOWED, feature=feature, action=action)

    def require(
        self,
        principal: Principal,
        feature: Feature | str,
        action: Action | str,
        entitlement: "Entitlement | None" = None,
    ) -> Decision:
        """Like ``can`` but raises ``RbacDenied`` or ``PlanDenied`` on refusal."""
        decision = self.can(principal, feature, action, entitlement)
        if decision.reason == DecisionReason.RBAC_DENIED:
            logger.info(
                "Capability denied by RBAC",
                user_id=principal.user_id,
                feature=decision.feature.value,
                action=decision.action.value,
            )
            raise RbacDenied(decision)
        if decision.reason == DecisionReason.PLAN_DENIED:
            logger.info(
                "Capability denied by plan",
                user_id=principal.user_id,
                tenant_id=principal.tenant_id,
                feature=decision.feature.value,
                action=decision.action.value,
                detail=decision.detail,
            )
            raise PlanDenied(decision)
        return decision


permission_gate = PermissionGate()


def can(
    principal: Principal,
    feature: Feature | str,
    action: Action | str,
    entitlement: "Entitlement | None" = None,
) -> Decision:
    return permission_gate.can(principal, feature, action, entitlement)


def require(
    principal: Principal,
    feature: Feature | str,
    action: Action | str,
    entitlement: "Entitlement | None" = None,
) -> Decision:
    return permission_gate.require(principal, feature, action, entitlement)
