"""Entitlement result models."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from uniflow.platform.auth.capabilities import Action, Feature, resolve
from uniflow.platform.billing.catalog.models import MeteredResource, PlanLimits, SupportTier
from uniflow.platform.billing.subscriptions.models import SubscriptionStatus
from uniflow.platform.domain import SnapshotModel


class PlanDenial(str, Enum):
    """Why the plan (not RBAC) refused an action."""

    SUSPENDED = "suspended"
    EXPIRED = "expired"
    FEATURE_NOT_IN_PLAN = "feature_not_in_plan"
    LIMIT_REACHED = "limit_reached"
    USAGE_UNKNOWN = "usage_unknown"


# Plan feature flag each CRM feature depends on. Administration features are
# not plan-gated.
FEATURE_FLAGS: dict[Feature, str | None] = {
    Feature.USER_MANAGEMENT: None,
    Feature.ROLE_MANAGEMENT: None,
    Feature.GROUP_MANAGEMENT: None,
    Feature.LEAD_MANAGEMENT: "lead_management",
    Feature.CONTACT_MANAGEMENT: "contact_management",
    Feature.ACCOUNT_MANAGEMENT: "deal_tracking",
    Feature.ACTIVITY_MANAGEMENT: "task_management",
    Feature.REPORT_MANAGEMENT: "advanced_reports",
    Feature.DATA_CENTER: None,
}

# Standard reports stay readable on every plan; building and exporting need
# the advanced reports flag.
UNGATED_ACTIONS: dict[Feature, frozenset[Action]] = {
    Feature.REPORT_MANAGEMENT: frozenset({Action.READ}),
}

# Actions that consume a metered resource.
METERED_ACTIONS: dict[tuple[Feature, Action], MeteredResource] = {
    (Feature.USER_MANAGEMENT, Action.CREATE): MeteredResource.USERS,
    (Feature.LEAD_MANAGEMENT, Action.CREATE): MeteredResource.LEADS,
    (Feature.LEAD_MANAGEMENT, Action.IMPORT): MeteredResource.LEADS,
    (Feature.DATA_CENTER, Action.MOVE_TO_LEADS): MeteredResource.LEADS,
    (Feature.CONTACT_MANAGEMENT, Action.CREATE): MeteredResource.CONTACTS,
    (Feature.ACCOUNT_MANAGEMENT, Action.CREATE): MeteredResource.DEALS,
    (Feature.DATA_CENTER, Action.CREATE): MeteredResource.STORAGE_MB,
}


class PlanDecision(SnapshotModel):
    allowed: bool
    detail: PlanDenial | None = None
    plan_feature: str | None = None
    resource: str | None = None


class Entitlement(SnapshotModel):
    """
    What a tenant may do right now.

    Computed fresh on every read from the subscription snapshot, live usage
    and ``now``. Never persisted.
    """

    tenant_id: str
    plan_id: str
    plan_name: str
    evaluated_at: datetime
    effective_status: SubscriptionStatus
    stored_status: SubscriptionStatus
    trial_days_remaining: int = 0
    days_remaining: int = 0
    access_until: datetime | None = None
    support: SupportTier = SupportTier.EMAIL
    limits: PlanLimits
    usage: dict[str, int | None] = Field(default_factory=dict)
    limit_flags: dict[str, bool] = Field(default_factory=dict)
    feature_flags: dict[str, bool] = Field(default_factory=dict)
    unknown_usage: list[str] = Field(default_factory=list)

    @property
    def is_usable(self) -> bool:
        """Full access: trial, active, or cancelled but still inside the paid window."""
        return self.effective_status in (
            SubscriptionStatus.TRIAL,
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.CANCELLED,
        )

    def has_feature(self, feature: str) -> bool:
        return self.feature_flags.get(feature, False)

    def is_limit_reached(self, resource: str) -> bool:
        return self.limit_flags.get(resource, True)

    def allows(self, feature: Feature | str, action: Action | str) -> PlanDecision:
        """
        Plan side of a capability check.

        Suspended tenants are refused everything. Expired tenants (and
        cancelled ones past their paid window) keep read access only. Otherwise
        the feature flag must be on and, for consuming actions, the metered
        resource must be known and under its limit.
        """
        feature, action = resolve(feature, action)
        flag = FEATURE_FLAGS[feature]

        if self.effective_status == SubscriptionStatus.SUSPENDED:
            return PlanDecision(allowed=False, detail=PlanDenial.SUSPENDED, plan_feature=flag)
        if self.effective_status == SubscriptionStatus.EXPIRED:
            if action == Action.READ:
                return PlanDecision(allowed=True, plan_feature=flag)
            return PlanDecision(allowed=False, detail=PlanDenial.EXPIRED, plan_feature=flag)

        ungated = action in UNGATED_ACTIONS.get(feature, frozenset())
        if flag is not None and not ungated and not self.has_feature(flag):
            return PlanDecision(
                allowed=False, detail=PlanDenial.FEATURE_NOT_IN_PLAN, plan_feature=flag
            )

        resource = METERED_ACTIONS.get((feature, action))
        if resource is not None:
            if resource.value in self.unknown_usage:
                return PlanDecision(
                    allowed=False,
                    detail=PlanDenial.USAGE_UNKNOWN,
                    plan_feature=flag,
                    resource=resource.value,
                )
            if self.is_limit_reached(resource.value):
                return PlanDecision(
                    allowed=False,
                    detail=PlanDenial.LIMIT_REACHED,
                    plan_feature=flag,
                    resource=resource.value,
                )

        return PlanDecision(
            allowed=True, plan_feature=flag, resource=resource.value if resource else None
        )
