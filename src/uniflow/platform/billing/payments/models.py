"""
Payment ledger models.

The ledger is append-only: a completed entry is never edited. Corrections are
new entries pointing at the entry they correct.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field
from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from uniflow.platform.billing.exceptions import PaymentLedgerError
from uniflow.platform.db import Base, TimestampMixin, as_utc
from uniflow.platform.domain import AppBaseModel, SnapshotModel


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"


class PaymentType(str, Enum):
    SUBSCRIPTION = "subscription"
    UPGRADE = "upgrade"
    RENEWAL = "renewal"
    CORRECTION = "correction"


class PaymentOutcome(AppBaseModel):
    """Already-resolved result reported by the payment gateway integration."""

    status: PaymentStatus
    amount: Decimal | None = Field(None, ge=0)
    payment_method: str = "manual"
    gateway_transaction_id: str | None = None
    paid_at: datetime | None = None
    notes: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED


class Payment(SnapshotModel):
    payment_id: str
    tenant_id: str
    invoice_number: str | None
    plan_id: str
    plan_name: str
    amount: Decimal
    currency: str
    billing_cycle: str
    billing_period_start: datetime | None
    billing_period_end: datetime | None
    status: PaymentStatus
    payment_type: PaymentType
    payment_method: str
    gateway_transaction_id: str | None = None
    paid_at: datetime | None = None
    notes: str | None = None
    corrects_payment_id: str | None = None


class PaymentTable(TimestampMixin, Base):
    """SQLAlchemy table for subscription payments."""

    __tablename__ = "subscription_payments"

    payment_id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: f"pay_{uuid4().hex[:16]}"
    )
    tenant_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    invoice_number: Mapped[str | None] = mapped_column(String(30), unique=True, nullable=True)

    plan_id: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False)
    billing_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    billing_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False, default="manual")
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrects_payment_id: Mapped[str | None] = mapped_column(
        String(50), ForeignKey("subscription_payments.payment_id"), nullable=True
    )

    def to_payment(self) -> Payment:
        return Payment(
            payment_id=self.payment_id,
            tenant_id=self.tenant_id,
            invoice_number=self.invoice_number,
            plan_id=self.plan_id,
            plan_name=self.plan_name,
            amount=Decimal(self.amount),
            currency=self.currency,
            billing_cycle=self.billing_cycle,
            billing_period_start=as_utc(self.billing_period_start),
            billing_period_end=as_utc(self.billing_period_end),
            status=PaymentStatus(self.status),
            payment_type=PaymentType(self.payment_type),
            payment_method=self.payment_method,
            gateway_transaction_id=self.gateway_transaction_id,
            paid_at=as_utc(self.paid_at),
            notes=self.notes,
            corrects_payment_id=self.corrects_payment_id,
        )


@event.listens_for(PaymentTable, "before_update")
def _reject_completed_payment_updates(mapper: Any, connection: Any, target: PaymentTable) -> None:
    state = inspect(target)
    changed = [attr.key for attr in state.attrs if attr.history.has_changes()]
    if not changed:
        return
    status_history = state.attrs.status.history
    previous = status_history.deleted[0] if status_history.deleted else target.status
    if previous == PaymentStatus.COMPLETED.value:
        raise PaymentLedgerError(
            "Completed payments are immutable", invoice_number=target.invoice_number
        )
