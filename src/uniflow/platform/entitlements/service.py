"""Entitlement lookups: loads the inputs and runs the evaluator."""

from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.auth.capabilities import Action, Feature
from uniflow.platform.auth.gate import Decision, PermissionGate, permission_gate
from uniflow.platform.auth.rbac import Principal
from uniflow.platform.billing.catalog.models import PlanTable
from uniflow.platform.billing.exceptions import TenantNotFoundError
from uniflow.platform.billing.subscriptions.models import SubscriptionTable
from uniflow.platform.entitlements.evaluator import evaluate
from uniflow.platform.entitlements.models import Entitlement
from uniflow.platform.tenant.models import TenantTable
from uniflow.platform.usage.meter import UsageMeter


class EntitlementService:
    """Current entitlement of a tenant, computed on every call."""

    def __init__(
        self,
        db: AsyncSession,
        meter: UsageMeter,
        *,
        clock: Callable[[], datetime] | None = None,
        gate: PermissionGate | None = None,
    ) -> None:
        self.db = db
        self.meter = meter
        self.clock = clock or (lambda: datetime.now(UTC))
        self.gate = gate or permission_gate

    async def get_entitlement(self, tenant_id: str) -> Entitlement:
        tenant = await self.db.get(TenantTable, tenant_id)
        if tenant is None or tenant.subscription is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)
        subscription: SubscriptionTable = tenant.subscription
        plan_row = await self.db.get(PlanTable, subscription.plan_id)
        usage = await self.meter.get_usage(tenant_id)
        return evaluate(
            subscription.to_subscription(),
            usage,
            plan_row.to_plan() if plan_row is not None else None,
            now=self.clock(),
            is_suspended=tenant.is_suspended,
        )

    async def check(
        self, principal: Principal, tenant_id: str, feature: Feature | str, action: Action | str
    ) -> Decision:
        """Gate decision for ``principal`` acting inside ``tenant_id``."""
        return self.gate.can(principal, feature, action, await self.get_entitlement(tenant_id))
