"""
Append-only payment ledger.

Entries are written inside the caller's transaction (``flush`` only) so a
ledger line and the subscription transition it pays for commit together.
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.billing.exceptions import BillingError, ConflictError
from uniflow.platform.billing.payments.models import (
    Payment,
    PaymentOutcome,
    PaymentStatus,
    PaymentTable,
    PaymentType,
)

logger = structlog.get_logger(__name__)


class PaymentLedger:
    """Writes and reads subscription payment entries."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _next_invoice_number(self, when: datetime) -> str:
        result = await self.db.execute(
            select(func.count()).select_from(PaymentTable).where(
                PaymentTable.invoice_number.is_not(None)
            )
        )
        sequence = int(result.scalar_one()) + 1
        return f"INV-{when:%Y%m}-{sequence:06d}"

    async def append(
        self,
        *,
        tenant_id: str,
        plan_id: str,
        plan_name: str,
        amount: Decimal,
        currency: str,
        billing_cycle: str,
        period_start: datetime | None,
        period_end: datetime | None,
        outcome: PaymentOutcome,
        payment_type: PaymentType,
        now: datetime,
        corrects_payment_id: str | None = None,
    ) -> Payment:
        """Add one entry. Only completed entries receive an invoice number."""
        invoice_number = None
        paid_at = None
        if outcome.status == PaymentStatus.COMPLETED:
            paid_at = outcome.paid_at or now
            invoice_number = await self._next_invoice_number(paid_at)

        row = PaymentTable(
            tenant_id=tenant_id,
            invoice_number=invoice_number,
            plan_id=plan_id,
            plan_name=plan_name,
            amount=amount,
            currency=currency,
            billing_cycle=billing_cycle,
            billing_period_start=period_start,
            billing_period_end=period_end,
            status=outcome.status.value,
            payment_type=payment_type.value,
            payment_method=outcome.payment_method,
            gateway_transaction_id=outcome.gateway_transaction_id,
            paid_at=paid_at,
            notes=outcome.notes,
            corrects_payment_id=corrects_payment_id,
        )
        self.db.add(row)
        await self.db.flush()

        logger.info(
            "Payment recorded",
            tenant_id=tenant_id,
            invoice_number=invoice_number,
            amount=str(amount),
            status=outcome.status.value,
            payment_type=payment_type.value,
        )
        return row.to_payment()

    async def list_payments(self, tenant_id: str, limit: int = 10) -> list[Payment]:
        result = await self.db.execute(
            select(PaymentTable)
            .where(PaymentTable.tenant_id == tenant_id)
            .order_by(PaymentTable.created_at.desc(), PaymentTable.payment_id.desc())
            .limit(limit)
        )
        return [row.to_payment() for row in result.scalars().all()]

    async def record_correction(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str,
        *,
        now: datetime | None = None,
    ) -> Payment:
        """
        Correct a completed entry by appending a new one.

        ``amount`` is the signed adjustment (negative for a refund). Unlike
        ``append`` this commits on its own; a pending or failed entry has
        nothing to correct.
        """
        original = await self.db.get(PaymentTable, payment_id)
        if original is None:
            raise BillingError(
                f"Payment {payment_id} not found",
                "PAYMENT_NOT_FOUND",
                status_code=404,
                context={"payment_id": payment_id},
            )
        if original.status != PaymentStatus.COMPLETED.value:
            raise BillingError(
                f"Payment {payment_id} is {original.status}; only completed payments are corrected",
                "PAYMENT_NOT_CORRECTABLE",
                status_code=409,
                context={"payment_id": payment_id, "payment_status": original.status},
                recovery_hint="Record the gateway outcome for the payment instead",
            )
        tenant_id = original.tenant_id
        now = now or datetime.now(UTC)
        try:
            correction = await self.append(
                tenant_id=tenant_id,
                plan_id=original.plan_id,
                plan_name=original.plan_name,
                amount=amount,
                currency=original.currency,
                billing_cycle=original.billing_cycle,
                period_start=original.billing_period_start,
                period_end=original.billing_period_end,
                outcome=PaymentOutcome(
                    status=PaymentStatus.COMPLETED, payment_method="correction", notes=reason
                ),
                payment_type=PaymentType.CORRECTION,
                now=now,
                corrects_payment_id=payment_id,
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Correction hit an invoice number conflict", payment_id=payment_id)
            raise ConflictError(
                f"Correction of payment {payment_id} conflicts with a concurrent write",
                tenant_id=tenant_id,
            ) from e
        except Exception:
            await self.db.rollback()
            raise
        return correction
