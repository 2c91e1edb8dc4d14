"""
Reseller registry.

Resellers apply, are approved (or rejected/suspended) by a platform operator,
and carry a default commission rate copied onto each tenant attributed to
them afterwards.
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.billing.exceptions import BillingError, ResellerNotFoundError
from uniflow.platform.logging import log_audit_event
from uniflow.platform.partner_management.models import (
    Reseller,
    ResellerCreate,
    ResellerStatus,
    ResellerTable,
)
from uniflow.platform.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class ResellerService:
    """Registration and administration of resellers."""

    def __init__(self, db: AsyncSession, *, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def _get_row(self, reseller_id: str) -> ResellerTable:
        row = await self.db.get(ResellerTable, reseller_id)
        if row is None:
            raise ResellerNotFoundError(
                f"Reseller {reseller_id} not found", reseller_id=reseller_id
            )
        return row

    async def register(self, data: ResellerCreate) -> Reseller:
        """Record a reseller application; it starts as pending."""
        existing = await self.db.execute(
            select(ResellerTable).where(func.lower(ResellerTable.email) == data.email.lower())
        )
        if existing.scalar_one_or_none() is not None:
            raise BillingError(
                f"A reseller with email {data.email} already exists",
                "RESELLER_EXISTS",
                status_code=409,
                context={"email": data.email},
            )

        row = ResellerTable(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            phone=data.phone,
            company_name=data.company_name,
            reason=data.reason,
            code=data.code,
            commission_rate=self.settings.commission.default_rate,
            status=ResellerStatus.PENDING.value,
        )
        self.db.add(row)
        await self.db.commit()

        logger.info("Reseller registered", reseller_id=row.reseller_id, email=data.email)
        return row.to_reseller()

    async def get(self, reseller_id: str) -> Reseller:
        return (await self._get_row(reseller_id)).to_reseller()

    async def list_resellers(
        self,
        status: ResellerStatus | None = None,
        *,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Reseller], int]:
        stmt = select(ResellerTable)
        count_stmt = select(func.count()).select_from(ResellerTable)
        if status is not None:
            stmt = stmt.where(ResellerTable.status == status.value)
            count_stmt = count_stmt.where(ResellerTable.status == status.value)

        total = int((await self.db.execute(count_stmt)).scalar_one())
        result = await self.db.execute(
            stmt.order_by(ResellerTable.created_at.desc()).offset(offset).limit(limit)
        )
        return [row.to_reseller() for row in result.scalars().all()], total

    async def update_status(
        self,
        reseller_id: str,
        status: ResellerStatus,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
    ) -> Reseller:
        """Approve, reject or suspend a reseller. Approval stamps who and when."""
        row = await self._get_row(reseller_id)
        previous = row.status
        row.status = status.value
        if status == ResellerStatus.APPROVED:
            row.approved_at = now or datetime.now(UTC)
            row.approved_by = actor_id
        await self.db.commit()

        log_audit_event(
            f"reseller.{status.value}",
            "partner",
            user_id=actor_id,
            resource_type="reseller",
            resource_id=reseller_id,
            previous_status=previous,
        )
        return row.to_reseller()

    async def update_commission_rate(
        self, reseller_id: str, rate: Decimal, *, actor_id: str | None = None
    ) -> Reseller:
        """
        Change the default rate for tenants attributed from now on.

        Already attributed tenants keep the rate they were given.
        """
        if rate < 0 or rate > 100:
            raise BillingError(
                f"Commission rate must be between 0 and 100, got {rate}",
                "INVALID_COMMISSION_RATE",
                status_code=400,
                context={"reseller_id": reseller_id, "rate": str(rate)},
            )
        row = await self._get_row(reseller_id)
        previous = Decimal(row.commission_rate)
        row.commission_rate = rate
        await self.db.commit()

        log_audit_event(
            "reseller.commission_rate_changed",
            "partner",
            user_id=actor_id,
            resource_type="reseller",
            resource_id=reseller_id,
            previous_rate=str(previous),
            new_rate=str(rate),
        )
        return row.to_reseller()

    def referral_link(self, reseller: Reseller) -> str:
        """Sign-up link that attributes the new tenant to ``reseller``."""
        base = self.settings.commission.partner_portal_url.rstrip("/")
        return f"{base}/signup?reseller={reseller.code or reseller.reseller_id}"
