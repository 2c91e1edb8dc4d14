"""Plan catalog: priced tiers with usage limits and feature flags."""

from uniflow.platform.billing.catalog.models import (
    UNLIMITED,
    BillingCycle,
    MeteredResource,
    Plan,
    PlanDefinition,
    PlanFeatures,
    PlanLimits,
    PlanPrice,
    PlanTable,
    SupportTier,
)
from uniflow.platform.billing.catalog.service import PlanCatalog

__all__ = [
    "UNLIMITED",
    "BillingCycle",
    "MeteredResource",
    "Plan",
    "PlanCatalog",
    "PlanDefinition",
    "PlanFeatures",
    "PlanLimits",
    "PlanPrice",
    "PlanTable",
    "SupportTier",
]
