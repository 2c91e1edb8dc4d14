"""
Subscription models.

One subscription row per tenant. The row keeps its own copy of the plan's
amount, limits and features taken at purchase time, and a ``version`` counter
used for optimistic locking so two racing transitions cannot both land.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from uniflow.platform.billing.catalog.models import BillingCycle, PlanFeatures, PlanLimits
from uniflow.platform.billing.payments.models import PaymentOutcome
from uniflow.platform.db import Base, TimestampMixin, as_utc
from uniflow.platform.domain import AppBaseModel, SnapshotModel


class SubscriptionStatus(str, Enum):
    """Stored subscription status."""

    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class SubscriptionEvent(str, Enum):
    """Events accepted by the lifecycle state machine."""

    TRIAL_ELAPSED = "trial_elapsed"
    TERM_ELAPSED = "term_elapsed"
    UPGRADE = "upgrade"
    RENEW = "renew"
    RENEWAL_FAILED = "renewal_failed"
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    CANCEL = "cancel"


class Subscription(SnapshotModel):
    """Consistent read snapshot of a tenant's subscription."""

    subscription_id: str
    tenant_id: str
    plan_id: str
    plan_name: str
    status: SubscriptionStatus
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    amount: Decimal = Decimal("0")
    currency: str = "INR"
    limits: PlanLimits
    features: PlanFeatures

    start_date: datetime | None = None
    end_date: datetime | None = None
    renewal_date: datetime | None = None
    auto_renew: bool = True

    trial_start_date: datetime | None = None
    trial_end_date: datetime | None = None
    is_trial_active: bool = False
    is_trial_expired: bool = False

    last_payment_date: datetime | None = None
    last_payment_amount: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")

    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    version: int = 1


class SubscriptionTable(TimestampMixin, Base):
    """SQLAlchemy table for tenant subscriptions."""

    __tablename__ = "tenant_subscriptions"

    subscription_id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: f"sub_{uuid4().hex[:16]}"
    )
    tenant_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("tenants.tenant_id"), unique=True, nullable=False
    )

    # Plan snapshot
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("subscription_plans.plan_id"), nullable=False, index=True
    )
    plan_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    limits: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    features: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Paid term
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    renewal_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Trial
    trial_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_trial_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_trial_expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Payments
    last_payment_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_payment_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_subscription(self) -> Subscription:
        return Subscription(
            subscription_id=self.subscription_id,
            tenant_id=self.tenant_id,
            plan_id=self.plan_id,
            plan_name=self.plan_name,
            status=SubscriptionStatus(self.status),
            billing_cycle=BillingCycle(self.billing_cycle),
            amount=Decimal(self.amount),
            currency=self.currency,
            limits=PlanLimits(**self.limits),
            features=PlanFeatures(**self.features),
            start_date=as_utc(self.start_date),
            end_date=as_utc(self.end_date),
            renewal_date=as_utc(self.renewal_date),
            auto_renew=self.auto_renew,
            trial_start_date=as_utc(self.trial_start_date),
            trial_end_date=as_utc(self.trial_end_date),
            is_trial_active=self.is_trial_active,
            is_trial_expired=self.is_trial_expired,
            last_payment_date=as_utc(self.last_payment_date),
            last_payment_amount=Decimal(self.last_payment_amount),
            total_paid=Decimal(self.total_paid),
            cancelled_at=as_utc(self.cancelled_at),
            cancellation_reason=self.cancellation_reason,
            version=self.version,
        )


# ==================== Request payloads ====================


class UpgradeRequest(AppBaseModel):
    plan_id: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payment: PaymentOutcome
    expected_version: int | None = None


class SuspendRequest(AppBaseModel):
    reason: str = Field("No reason provided", max_length=500)
    expected_version: int | None = None


class CancelRequest(AppBaseModel):
    reason: str | None = Field(None, max_length=500)
    expected_version: int | None = None


class SubscriptionFilters(AppBaseModel):
    """Filters for operator subscription listings."""

    status: SubscriptionStatus | None = None
    plan_name: str | None = None
    reseller_id: str | None = None
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)


class RecordPaymentRequest(AppBaseModel):
    """Renewal payment outcome reported by the gateway integration."""

    payment: PaymentOutcome
    expected_version: int | None = None


# ==================== Listings ====================


class SubscriptionListItem(SnapshotModel):
    tenant_id: str
    organization_id: str
    organization_name: str
    reseller_id: str | None = None
    is_suspended: bool = False
    effective_status: SubscriptionStatus
    subscription: Subscription


class SubscriptionPage(SnapshotModel):
    items: list[SubscriptionListItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
