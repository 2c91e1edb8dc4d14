"""Entitlement evaluation: effective status, limits and plan feature flags."""

from uniflow.platform.entitlements.evaluator import (
    TIER_DEFAULT_FEATURES,
    access_until,
    effective_status,
    evaluate,
    evaluate_tenant,
    feature_flags,
    limit_flags,
    trial_days_remaining,
)
from uniflow.platform.entitlements.models import Entitlement, PlanDecision, PlanDenial
from uniflow.platform.entitlements.service import EntitlementService

__all__ = [
    "TIER_DEFAULT_FEATURES",
    "Entitlement",
    "EntitlementService",
    "PlanDecision",
    "PlanDenial",
    "access_until",
    "effective_status",
    "evaluate",
    "evaluate_tenant",
    "feature_flags",
    "limit_flags",
    "trial_days_remaining",
]
