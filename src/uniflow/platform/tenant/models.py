"""
Tenant models.

A tenant is a customer organization with its own isolated data space. It owns
exactly one subscription and may be attributed to a reseller; the commission
rate is copied from the reseller when the attribution is made.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import EmailStr, Field
from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from uniflow.platform.billing.subscriptions.models import Subscription, SubscriptionTable
from uniflow.platform.db import Base, TimestampMixin, as_utc
from uniflow.platform.domain import AppBaseModel, SnapshotModel


class TenantTable(TimestampMixin, Base):
    """SQLAlchemy table for tenants (organizations)."""

    __tablename__ = "tenants"

    tenant_id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: f"ten_{uuid4().hex[:16]}"
    )
    organization_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Operator override, independent of subscription status
    is_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suspension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reseller attribution
    reseller_id: Mapped[str | None] = mapped_column(
        String(50), ForeignKey("resellers.reseller_id"), nullable=True, index=True
    )
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)

    subscription: Mapped[SubscriptionTable] = relationship(
        SubscriptionTable, uselist=False, lazy="selectin"
    )

    def to_tenant(self) -> "Tenant":
        return Tenant(
            tenant_id=self.tenant_id,
            organization_id=self.organization_id,
            organization_name=self.organization_name,
            slug=self.slug,
            contact_email=self.contact_email,
            contact_phone=self.contact_phone,
            is_suspended=self.is_suspended,
            suspension_reason=self.suspension_reason,
            reseller_id=self.reseller_id,
            commission_rate=Decimal(self.commission_rate),
            created_at=as_utc(self.created_at),
            subscription=self.subscription.to_subscription(),
        )


class Tenant(SnapshotModel):
    """Read snapshot of a tenant together with its subscription."""

    tenant_id: str
    organization_id: str
    organization_name: str
    slug: str
    contact_email: str
    contact_phone: str | None = None
    is_suspended: bool = False
    suspension_reason: str | None = None
    reseller_id: str | None = None
    commission_rate: Decimal = Decimal("0")
    created_at: datetime | None = None
    subscription: Subscription


class TenantCreate(AppBaseModel):
    """Payload for registering a new tenant."""

    organization_name: str = Field(min_length=1, max_length=255)
    contact_email: EmailStr
    contact_phone: str | None = Field(None, max_length=50)
    reseller_id: str | None = None
    trial_plan_id: str | None = None
