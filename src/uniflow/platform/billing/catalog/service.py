"""
Plan catalog service.

Read-only lookups for the lifecycle engine plus operator-side editing. Edits
only change the catalog row; subscriptions keep the copy they took at purchase.
"""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.billing.catalog.defaults import DEFAULT_PLANS
from uniflow.platform.billing.catalog.models import Plan, PlanDefinition, PlanTable
from uniflow.platform.billing.exceptions import PlanNotFoundError
from uniflow.platform.logging import log_audit_event

logger = structlog.get_logger(__name__)


class PlanCatalog:
    """Lookup and maintenance of subscription plans."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_plan(self, plan_id: str) -> Plan:
        row = await self.db.get(PlanTable, plan_id)
        if row is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found", plan_id=plan_id)
        return row.to_plan()

    async def get_plan_by_name(self, name: str) -> Plan:
        result = await self.db.execute(
            select(PlanTable).where(func.lower(PlanTable.name) == name.strip().lower())
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise PlanNotFoundError(f"Plan '{name}' not found")
        return row.to_plan()

    async def list_plans(self, include_inactive: bool = False) -> list[Plan]:
        stmt = select(PlanTable).order_by(PlanTable.sort_order, PlanTable.name)
        if not include_inactive:
            stmt = stmt.where(PlanTable.is_active.is_(True))
        result = await self.db.execute(stmt)
        return [row.to_plan() for row in result.scalars().all()]

    async def upsert_plan(
        self, definition: PlanDefinition, *, actor_id: str | None = None, commit: bool = True
    ) -> Plan:
        """
        Create a plan or edit the plan with the same name.

        Existing subscriptions are untouched: they hold their own snapshot of
        amount, limits and features until their next transition.
        """
        result = await self.db.execute(
            select(PlanTable).where(func.lower(PlanTable.name) == definition.name.lower())
        )
        row = result.scalar_one_or_none()
        created = row is None
        if row is None:
            row = PlanTable(plan_id=f"plan_{definition.slug}", name=definition.name)
            self.db.add(row)

        row.slug = definition.slug
        row.display_name = definition.display_name
        row.description = definition.description
        row.price_monthly = definition.price.monthly
        row.price_yearly = definition.price.yearly
        row.currency = definition.currency
        row.trial_days = definition.trial_days
        row.limits = definition.limits.model_dump()
        row.features = definition.features.model_dump()
        row.support = definition.support.value
        row.is_active = definition.is_active
        row.is_popular = definition.is_popular
        row.sort_order = definition.sort_order

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        log_audit_event(
            "plan.created" if created else "plan.updated",
            "billing",
            user_id=actor_id,
            resource_type="plan",
            resource_id=row.plan_id,
            plan_name=row.name,
        )
        return row.to_plan()

    async def deactivate_plan(self, plan_id: str, *, actor_id: str | None = None) -> Plan:
        """Hide a plan from new purchases. Plans are never deleted."""
        row = await self.db.get(PlanTable, plan_id)
        if row is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found", plan_id=plan_id)
        row.is_active = False
        await self.db.commit()
        log_audit_event(
            "plan.deactivated",
            "billing",
            user_id=actor_id,
            resource_type="plan",
            resource_id=plan_id,
        )
        return row.to_plan()

    async def seed_default_plans(self) -> list[Plan]:
        """Install or refresh the Free / Basic / Professional / Enterprise catalog."""
        plans = [await self.upsert_plan(definition, commit=False) for definition in DEFAULT_PLANS]
        await self.db.commit()
        logger.info("Default plans seeded", count=len(plans))
        return plans
