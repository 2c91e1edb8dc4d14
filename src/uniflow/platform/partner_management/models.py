"""
Reseller (partner) models.

Resellers refer tenants and earn a recurring commission on them. The link is a
lookup relation: tenants carry ``reseller_id``; a reseller does not own them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import EmailStr, Field
from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from uniflow.platform.db import Base, TimestampMixin, as_utc
from uniflow.platform.domain import AppBaseModel, SnapshotModel


class ResellerStatus(str, Enum):
    """Reseller application status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class ResellerTable(TimestampMixin, Base):
    """SQLAlchemy table for resellers."""

    __tablename__ = "resellers"

    reseller_id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: f"rsl_{uuid4().hex[:16]}"
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    # Default rate for newly attributed tenants (percent)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=10)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    approved_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_reseller(self) -> "Reseller":
        return Reseller(
            reseller_id=self.reseller_id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
            company_name=self.company_name,
            code=self.code,
            commission_rate=Decimal(self.commission_rate),
            status=ResellerStatus(self.status),
            approved_by=self.approved_by,
            approved_at=as_utc(self.approved_at),
        )


class Reseller(SnapshotModel):
    reseller_id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    company_name: str
    code: str | None = None
    commission_rate: Decimal
    status: ResellerStatus
    approved_by: str | None = None
    approved_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ResellerCreate(AppBaseModel):
    """Reseller application payload."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    company_name: str = Field(min_length=1, max_length=255)
    reason: str | None = None
    code: str | None = Field(None, max_length=50)


class TenantCommission(SnapshotModel):
    """Commission line for one attributed tenant."""

    tenant_id: str
    organization_name: str
    plan_name: str
    effective_status: str
    billing_cycle: str
    currency: str
    monthly_amount: Decimal
    commission_rate: Decimal
    monthly_commission: Decimal
    counted: bool


class ResellerStats(SnapshotModel):
    """Recomputed commission view for one reseller at a point in time."""

    reseller_id: str
    as_of: datetime
    currency: str
    total_tenants: int
    active_tenants: int
    monthly_revenue: Decimal
    monthly_commission: Decimal
    tenants: list[TenantCommission] = Field(default_factory=list)
