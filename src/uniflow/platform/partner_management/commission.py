"""
Reseller commission ledger.

Commission is recomputed from tenant records on every read; there is no
running balance to drift when a suspend or cancel is missed. Each tenant
contributes its monthly-normalized subscription amount times the commission
rate it was attributed with, and only while its effective status at ``as_of``
is active. Terms are summed unrounded and the total is rounded once, half-up,
to the currency's minor unit. Tenants billed in a currency other than the
reseller's are listed but left out of the totals.
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.billing.exceptions import ResellerNotFoundError
from uniflow.platform.billing.money_utils import (
    create_money,
    normalize_to_monthly,
    percentage_of,
    round_money,
)
from uniflow.platform.billing.subscriptions.models import SubscriptionStatus
from uniflow.platform.db import as_utc
from uniflow.platform.entitlements.evaluator import effective_status
from uniflow.platform.partner_management.models import (
    ResellerStats,
    ResellerTable,
    TenantCommission,
)
from uniflow.platform.settings import Settings, get_settings
from uniflow.platform.tenant.models import Tenant, TenantTable

logger = structlog.get_logger(__name__)


def round_amount(amount: Decimal, currency: str) -> Decimal:
    """Half-up to the currency's precision (2 places for INR)."""
    return Decimal(round_money(create_money(amount, currency)).amount)


def tenant_commission(
    tenant: Tenant, as_of: datetime, currency: str | None = None
) -> TenantCommission:
    """Unrounded commission line for one attributed tenant.

    A line billed in anything but ``currency`` (when given) is never counted.
    """
    subscription = tenant.subscription
    status = effective_status(subscription, now=as_of, is_suspended=tenant.is_suspended)
    monthly_amount = normalize_to_monthly(subscription.amount, subscription.billing_cycle.value)
    same_currency = currency is None or subscription.currency == currency
    counted = status == SubscriptionStatus.ACTIVE and same_currency
    return TenantCommission(
        tenant_id=tenant.tenant_id,
        organization_name=tenant.organization_name,
        plan_name=subscription.plan_name,
        effective_status=status.value,
        billing_cycle=subscription.billing_cycle.value,
        currency=subscription.currency,
        monthly_amount=monthly_amount,
        commission_rate=tenant.commission_rate,
        monthly_commission=(
            percentage_of(monthly_amount, tenant.commission_rate) if counted else Decimal("0")
        ),
        counted=counted,
    )


def summarize(
    reseller_id: str, tenants: list[Tenant], as_of: datetime, currency: str
) -> ResellerStats:
    """Aggregate commission lines; the only rounding happens here, once per total."""
    lines = [tenant_commission(tenant, as_of, currency) for tenant in tenants]
    foreign = [line.tenant_id for line in lines if line.currency != currency]
    if foreign:
        logger.warning(
            "Tenants billed in another currency left out of commission",
            reseller_id=reseller_id,
            currency=currency,
            tenant_ids=foreign,
        )
    counted = [line for line in lines if line.counted]
    revenue = sum((line.monthly_amount for line in counted), Decimal("0"))
    commission = sum((line.monthly_commission for line in counted), Decimal("0"))
    return ResellerStats(
        reseller_id=reseller_id,
        as_of=as_of,
        currency=currency,
        total_tenants=len(lines),
        active_tenants=len(counted),
        monthly_revenue=round_amount(revenue, currency),
        monthly_commission=round_amount(commission, currency),
        tenants=lines,
    )


class CommissionLedger:
    """Read-only commission view over tenant records."""

    def __init__(self, db: AsyncSession, *, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def _attributed_tenants(self, reseller_id: str) -> list[Tenant]:
        result = await self.db.execute(
            select(TenantTable)
            .where(TenantTable.reseller_id == reseller_id)
            .order_by(TenantTable.organization_id)
        )
        return [row.to_tenant() for row in result.scalars().all()]

    async def get_reseller_stats(
        self, reseller_id: str, as_of: datetime | None = None
    ) -> ResellerStats:
        """
        Commission position of a reseller at ``as_of`` (default: now).

        ``as_of`` is evaluated against the tenants' current records; past
        subscription states are not reconstructed.
        """
        if await self.db.get(ResellerTable, reseller_id) is None:
            raise ResellerNotFoundError(
                f"Reseller {reseller_id} not found", reseller_id=reseller_id
            )
        as_of = as_utc(as_of) or datetime.now(UTC)
        tenants = await self._attributed_tenants(reseller_id)
        stats = summarize(reseller_id, tenants, as_of, self.settings.subscriptions.currency)

        logger.debug(
            "Reseller stats computed",
            reseller_id=reseller_id,
            total_tenants=stats.total_tenants,
            active_tenants=stats.active_tenants,
            monthly_commission=str(stats.monthly_commission),
        )
        return stats

    async def commission(self, reseller_id: str, as_of: datetime | None = None) -> Decimal:
        return (await self.get_reseller_stats(reseller_id, as_of)).monthly_commission
