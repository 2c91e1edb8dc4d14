"""
Plan catalog models.

Plans are reference data edited only by platform operators. Subscriptions copy
a plan's price, limits and feature flags at purchase time, so editing a plan
here never changes what an existing subscriber is entitled to.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import Field, field_validator
from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from uniflow.platform.db import Base, TimestampMixin
from uniflow.platform.domain import AppBaseModel, SnapshotModel

UNLIMITED = -1


class BillingCycle(str, Enum):
    """Billing cycles offered for paid plans."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class SupportTier(str, Enum):
    """Support level bundled with a plan."""

    EMAIL = "email"
    PRIORITY = "priority"
    DEDICATED = "dedicated"
    ROUND_THE_CLOCK = "24x7"


class MeteredResource(str, Enum):
    """Resources counted against plan limits."""

    USERS = "users"
    LEADS = "leads"
    CONTACTS = "contacts"
    DEALS = "deals"
    STORAGE_MB = "storage_mb"


class PlanPrice(SnapshotModel):
    monthly: Decimal = Field(Decimal("0"), ge=0)
    yearly: Decimal = Field(Decimal("0"), ge=0)


class PlanLimits(SnapshotModel):
    """Usage limits; ``-1`` means unlimited."""

    users: int = Field(5, ge=UNLIMITED)
    leads: int = Field(1000, ge=UNLIMITED)
    contacts: int = Field(1000, ge=UNLIMITED)
    deals: int = Field(100, ge=UNLIMITED)
    storage_mb: int = Field(1024, ge=UNLIMITED)
    emails_per_day: int = Field(100, ge=UNLIMITED)

    def limit_for(self, resource: MeteredResource) -> int:
        return int(getattr(self, resource.value))


class PlanFeatures(SnapshotModel):
    """Feature switches; anything not switched on is off."""

    # Core
    lead_management: bool = False
    contact_management: bool = False
    deal_tracking: bool = False
    task_management: bool = False

    # Advanced
    email_integration: bool = False
    calendar_sync: bool = False
    advanced_reports: bool = False
    custom_fields: bool = False
    automation: bool = False
    api_access: bool = False

    # Premium
    white_labeling: bool = False
    dedicated_support: bool = False
    custom_integrations: bool = False
    multi_currency: bool = False
    advanced_security: bool = False
    sla: bool = False


class Plan(SnapshotModel):
    """Read snapshot of a catalog plan."""

    plan_id: str
    name: str
    slug: str
    display_name: str
    description: str = ""
    price: PlanPrice
    currency: str = "INR"
    trial_days: int = 15
    limits: PlanLimits
    features: PlanFeatures
    support: SupportTier = SupportTier.EMAIL
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0

    def price_for(self, cycle: BillingCycle) -> Decimal:
        """Price charged per cycle."""
        if cycle == BillingCycle.YEARLY:
            return self.price.yearly
        return self.price.monthly


class PlanDefinition(AppBaseModel):
    """Operator payload for creating or editing a plan."""

    name: str = Field(min_length=1, max_length=100)
    display_name: str = Field(min_length=1, max_length=255)
    description: str = ""
    price: PlanPrice = PlanPrice()
    currency: str = Field("INR", min_length=3, max_length=3)
    trial_days: int = Field(15, ge=0)
    limits: PlanLimits = PlanLimits()
    features: PlanFeatures = PlanFeatures()
    support: SupportTier = SupportTier.EMAIL
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def slug(self) -> str:
        return "-".join(self.name.lower().split())


class PlanTable(TimestampMixin, Base):
    """SQLAlchemy table for subscription plans."""

    __tablename__ = "subscription_plans"

    plan_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Pricing
    price_monthly: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    price_yearly: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    trial_days: Mapped[int] = mapped_column(Integer, nullable=False, default=15)

    # Limits and features (JSON)
    limits: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    features: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    support: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_popular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_plan(self) -> Plan:
        return Plan(
            plan_id=self.plan_id,
            name=self.name,
            slug=self.slug,
            display_name=self.display_name,
            description=self.description or "",
            price=PlanPrice(monthly=Decimal(self.price_monthly), yearly=Decimal(self.price_yearly)),
            currency=self.currency,
            trial_days=self.trial_days,
            limits=PlanLimits(**self.limits),
            features=PlanFeatures(**self.features),
            support=SupportTier(self.support),
            is_active=self.is_active,
            is_popular=self.is_popular,
            sort_order=self.sort_order,
        )
