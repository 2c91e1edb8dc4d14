"""Default plan catalog installed by ``seed_default_plans`` and the ``seed-plans`` command."""

from decimal import Decimal

from uniflow.platform.billing.catalog.models import (
    UNLIMITED,
    PlanDefinition,
    PlanFeatures,
    PlanLimits,
    PlanPrice,
    SupportTier,
)

_CORE = {
    "lead_management": True,
    "contact_management": True,
    "deal_tracking": True,
    "task_management": True,
}

DEFAULT_PLANS: tuple[PlanDefinition, ...] = (
    PlanDefinition(
        name="Free",
        display_name="Free Plan",
        description="Perfect for getting started",
        price=PlanPrice(monthly=Decimal("0"), yearly=Decimal("0")),
        trial_days=15,
        limits=PlanLimits(
            users=5, leads=1000, contacts=1000, deals=100, storage_mb=1024, emails_per_day=50
        ),
        features=PlanFeatures(**_CORE),
        support=SupportTier.EMAIL,
        sort_order=1,
    ),
    PlanDefinition(
        name="Basic",
        display_name="Basic Plan",
        description="Great for small teams",
        price=PlanPrice(monthly=Decimal("999"), yearly=Decimal("9990")),
        trial_days=15,
        limits=PlanLimits(
            users=10, leads=5000, contacts=5000, deals=500, storage_mb=5120, emails_per_day=200
        ),
        features=PlanFeatures(
            **_CORE, email_integration=True, calendar_sync=True, custom_fields=True
        ),
        support=SupportTier.PRIORITY,
        sort_order=2,
    ),
    PlanDefinition(
        name="Professional",
        display_name="Professional Plan",
        description="Best for growing businesses",
        price=PlanPrice(monthly=Decimal("2999"), yearly=Decimal("29990")),
        trial_days=15,
        limits=PlanLimits(
            users=25,
            leads=UNLIMITED,
            contacts=UNLIMITED,
            deals=UNLIMITED,
            storage_mb=20480,
            emails_per_day=1000,
        ),
        features=PlanFeatures(
            **_CORE,
            email_integration=True,
            calendar_sync=True,
            advanced_reports=True,
            custom_fields=True,
            automation=True,
            api_access=True,
            multi_currency=True,
            advanced_security=True,
        ),
        support=SupportTier.PRIORITY,
        is_popular=True,
        sort_order=3,
    ),
    PlanDefinition(
        name="Enterprise",
        display_name="Enterprise Plan",
        description="For large organizations",
        price=PlanPrice(monthly=Decimal("9999"), yearly=Decimal("99990")),
        trial_days=30,
        limits=PlanLimits(
            users=UNLIMITED,
            leads=UNLIMITED,
            contacts=UNLIMITED,
            deals=UNLIMITED,
            storage_mb=UNLIMITED,
            emails_per_day=UNLIMITED,
        ),
        features=PlanFeatures(**{name: True for name in PlanFeatures.model_fields}),
        support=SupportTier.ROUND_THE_CLOCK,
        sort_order=4,
    ),
)
