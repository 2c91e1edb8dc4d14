"""
Subscription lifecycle manager.

The only component that writes a tenant's subscription. Every transition:

1. loads the tenant and its subscription row,
2. persists lazily detected expiry (trial, paid or cancelled window lapsed),
3. validates the event against the transition table,
4. applies the side effects and appends ledger entries,
5. commits once; any error rolls the whole transition back.

Racing writers are serialized by the ``version`` column on the subscription
row: the second flush matches no row and surfaces as ``ConflictError``.
"""

import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from uniflow.platform.billing.catalog.models import BillingCycle, Plan
from uniflow.platform.billing.catalog.service import PlanCatalog
from uniflow.platform.billing.exceptions import (
    ConflictError,
    InvalidTransition,
    PaymentNotConfirmed,
    PlanNotFoundError,
    ResellerNotApprovedError,
    ResellerNotFoundError,
    TenantNotFoundError,
)
from uniflow.platform.billing.payments.ledger import PaymentLedger
from uniflow.platform.billing.payments.models import PaymentOutcome, PaymentStatus, PaymentType
from uniflow.platform.billing.subscriptions.models import (
    Subscription,
    SubscriptionEvent,
    SubscriptionFilters,
    SubscriptionListItem,
    SubscriptionPage,
    SubscriptionStatus,
    SubscriptionTable,
)
from uniflow.platform.billing.subscriptions.state_machine import next_status
from uniflow.platform.entitlements.evaluator import effective_status
from uniflow.platform.logging import log_audit_event
from uniflow.platform.partner_management.models import ResellerStatus, ResellerTable
from uniflow.platform.settings import Settings, get_settings
from uniflow.platform.tenant.models import Tenant, TenantCreate, TenantTable

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def advance(moment: datetime, cycle: BillingCycle) -> datetime:
    """Move ``moment`` forward by one calendar billing cycle."""
    if cycle == BillingCycle.YEARLY:
        return moment + relativedelta(years=1)
    return moment + relativedelta(months=1)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "organization"


class SubscriptionLifecycleManager:
    """Admin-driven and time-driven transitions of tenant subscriptions."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or utcnow
        self.settings = settings or get_settings()
        self.catalog = PlanCatalog(db)
        self.ledger = PaymentLedger(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transition(
        self, tenant_id: str, expected_version: int | None = None
    ) -> AsyncIterator[None]:
        """Run one transition in a single commit, rolling back on any error."""
        try:
            yield
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Concurrent subscription write rejected", tenant_id=tenant_id)
            raise ConflictError(
                f"Subscription for tenant {tenant_id} was modified by another request",
                tenant_id=tenant_id,
                expected_version=expected_version,
            ) from e
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Tenant write hit a uniqueness conflict", tenant_id=tenant_id)
            raise ConflictError(
                f"Tenant {tenant_id} conflicts with a concurrent write",
                tenant_id=tenant_id,
                expected_version=expected_version,
            ) from e
        except Exception:
            await self.db.rollback()
            raise

    async def _load(self, tenant_id: str) -> TenantTable:
        result = await self.db.execute(
            select(TenantTable).where(TenantTable.tenant_id == tenant_id)
        )
        tenant = result.scalar_one_or_none()
        if tenant is None or tenant.subscription is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found", tenant_id=tenant_id)
        return tenant

    @staticmethod
    def _check_version(tenant: TenantTable, expected_version: int | None) -> None:
        if expected_version is not None and tenant.subscription.version != expected_version:
            raise ConflictError(
                f"Subscription for tenant {tenant.tenant_id} is at version "
                f"{tenant.subscription.version}, not {expected_version}",
                tenant_id=tenant.tenant_id,
                expected_version=expected_version,
            )

    def _expire_if_lapsed(self, tenant: TenantTable, now: datetime) -> bool:
        """Persist lazily detected expiry on the loaded row. Returns True when changed."""
        sub = tenant.subscription
        stored = SubscriptionStatus(sub.status)
        if effective_status(sub.to_subscription(), now=now) != SubscriptionStatus.EXPIRED:
            return False
        if stored == SubscriptionStatus.EXPIRED:
            return False

        event = (
            SubscriptionEvent.TRIAL_ELAPSED
            if stored == SubscriptionStatus.TRIAL
            else SubscriptionEvent.TERM_ELAPSED
        )
        sub.status = next_status(stored, event).value
        if stored == SubscriptionStatus.TRIAL or sub.is_trial_active:
            sub.is_trial_active = False
            sub.is_trial_expired = True

        log_audit_event(
            "subscription.expired",
            "billing",
            tenant_id=tenant.tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
            previous_status=stored.value,
            transition=event.value,
        )
        return True

    async def _next_organization_id(self) -> str:
        prefix = self.settings.subscriptions.organization_id_prefix
        width = self.settings.subscriptions.organization_id_width
        result = await self.db.execute(select(func.count()).select_from(TenantTable))
        sequence = int(result.scalar_one()) + 1
        return f"{prefix}{sequence:0{width}d}"

    async def _trial_plan(self, plan_id: str | None) -> Plan:
        if plan_id:
            return await self.catalog.get_plan(plan_id)
        return await self.catalog.get_plan_by_name(self.settings.subscriptions.trial_plan)

    @staticmethod
    def _apply_plan(sub: SubscriptionTable, plan: Plan, cycle: BillingCycle) -> Decimal:
        price = plan.price_for(cycle)
        sub.plan_id = plan.plan_id
        sub.plan_name = plan.name
        sub.billing_cycle = cycle.value
        sub.amount = price
        sub.currency = plan.currency
        sub.limits = plan.limits.model_dump()
        sub.features = plan.features.model_dump()
        return price

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_tenant(self, tenant_id: str) -> Tenant:
        return (await self._load(tenant_id)).to_tenant()

    async def get_current_subscription(self, tenant_id: str) -> Subscription:
        """Stored subscription snapshot. Use the evaluator for the effective status."""
        return (await self._load(tenant_id)).subscription.to_subscription()

    async def list_subscriptions(
        self, filters: SubscriptionFilters | None = None
    ) -> SubscriptionPage:
        """
        Operator listing.

        ``status`` filters on the effective status at call time, so a trial
        that lapsed but was never written back is listed as expired.
        """
        filters = filters or SubscriptionFilters()
        now = self.clock()

        stmt = (
            select(TenantTable)
            .join(SubscriptionTable, SubscriptionTable.tenant_id == TenantTable.tenant_id)
            .order_by(TenantTable.created_at.desc(), TenantTable.tenant_id)
        )
        if filters.plan_name:
            stmt = stmt.where(func.lower(SubscriptionTable.plan_name) == filters.plan_name.lower())
        if filters.reseller_id:
            stmt = stmt.where(TenantTable.reseller_id == filters.reseller_id)

        result = await self.db.execute(stmt)
        items: list[SubscriptionListItem] = []
        for tenant in result.scalars().all():
            subscription = tenant.subscription.to_subscription()
            status = effective_status(subscription, now=now, is_suspended=tenant.is_suspended)
            if filters.status is not None and status != filters.status:
                continue
            items.append(
                SubscriptionListItem(
                    tenant_id=tenant.tenant_id,
                    organization_id=tenant.organization_id,
                    organization_name=tenant.organization_name,
                    reseller_id=tenant.reseller_id,
                    is_suspended=tenant.is_suspended,
                    effective_status=status,
                    subscription=subscription,
                )
            )

        start = (filters.page - 1) * filters.page_size
        return SubscriptionPage(
            items=items[start : start + filters.page_size],
            total=len(items),
            page=filters.page,
            page_size=filters.page_size,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_tenant(self, data: TenantCreate, *, actor_id: str | None = None) -> Tenant:
        """Register an organization; it starts on a trial of the configured plan."""
        now = self.clock()
        plan = await self._trial_plan(data.trial_plan_id)
        trial_days = plan.trial_days or self.settings.subscriptions.trial_days

        commission_rate = Decimal("0")
        if data.reseller_id:
            reseller = await self.db.get(ResellerTable, data.reseller_id)
            if reseller is None:
                raise ResellerNotFoundError(
                    f"Reseller {data.reseller_id} not found", reseller_id=data.reseller_id
                )
            if reseller.status != ResellerStatus.APPROVED.value:
                raise ResellerNotApprovedError(
                    f"Reseller {data.reseller_id} is {reseller.status}",
                    reseller_id=data.reseller_id,
                    status=reseller.status,
                )
            commission_rate = Decimal(reseller.commission_rate)

        organization_id = await self._next_organization_id()
        tenant = TenantTable(
            organization_id=organization_id,
            organization_name=data.organization_name,
            slug=f"{slugify(data.organization_name)}-{organization_id.lower()}",
            contact_email=str(data.contact_email),
            contact_phone=data.contact_phone,
            is_suspended=False,
            reseller_id=data.reseller_id,
            commission_rate=commission_rate,
        )
        subscription = SubscriptionTable(
            status=SubscriptionStatus.TRIAL.value,
            trial_start_date=now,
            trial_end_date=now + timedelta(days=trial_days),
            is_trial_active=True,
            is_trial_expired=False,
            auto_renew=True,
            total_paid=Decimal("0"),
            last_payment_amount=Decimal("0"),
        )
        self._apply_plan(subscription, plan, BillingCycle.MONTHLY)
        # A trial costs nothing; the plan price is charged on upgrade
        subscription.amount = Decimal("0")
        tenant.subscription = subscription

        async with self._transition(organization_id):
            self.db.add(tenant)
            await self.db.flush()

        log_audit_event(
            "tenant.created",
            "billing",
            user_id=actor_id,
            tenant_id=tenant.tenant_id,
            resource_type="tenant",
            resource_id=tenant.tenant_id,
            organization_id=organization_id,
            trial_plan=plan.name,
            trial_days=trial_days,
            reseller_id=data.reseller_id,
        )
        return tenant.to_tenant()

    async def reconcile(self, tenant_id: str) -> Subscription:
        """Write back an expiry the evaluator already reports."""
        now = self.clock()
        async with self._transition(tenant_id):
            tenant = await self._load(tenant_id)
            self._expire_if_lapsed(tenant, now)
        return tenant.subscription.to_subscription()

    async def reconcile_all(self) -> int:
        """Reconcile every tenant; returns how many subscriptions changed."""
        now = self.clock()
        changed = 0
        async with self._transition("all"):
            result = await self.db.execute(select(TenantTable))
            for tenant in result.scalars().all():
                if self._expire_if_lapsed(tenant, now):
                    changed += 1
        logger.info("Subscriptions reconciled", changed=changed)
        return changed

    async def upgrade(
        self,
        tenant_id: str,
        plan_id: str,
        billing_cycle: BillingCycle,
        outcome: PaymentOutcome,
        *,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Subscription:
        """Move a trial or expired tenant onto a paid plan."""
        now = self.clock()
        plan = await self.catalog.get_plan(plan_id)
        if not plan.is_active:
            raise PlanNotFoundError(f"Plan {plan_id} is no longer offered", plan_id=plan_id)

        async with self._transition(tenant_id, expected_version):
            tenant = await self._load(tenant_id)
            self._check_version(tenant, expected_version)
            self._expire_if_lapsed(tenant, now)
            sub = tenant.subscription
            target = next_status(SubscriptionStatus(sub.status), SubscriptionEvent.UPGRADE)

            price = plan.price_for(billing_cycle)
            if not outcome.succeeded:
                raise PaymentNotConfirmed(
                    f"Upgrade to {plan.name} requires a completed payment",
                    payment_status=outcome.status.value,
                    expected_amount=price,
                )
            if outcome.amount is not None and outcome.amount != price:
                raise PaymentNotConfirmed(
                    f"Payment of {outcome.amount} does not match the {plan.name} "
                    f"{billing_cycle.value} price of {price}",
                    payment_status=outcome.status.value,
                    expected_amount=price,
                )

            previous_plan = sub.plan_name
            self._apply_plan(sub, plan, billing_cycle)
            period_end = advance(now, billing_cycle)
            paid_at = outcome.paid_at or now

            sub.status = target.value
            sub.start_date = now
            sub.end_date = period_end
            sub.renewal_date = period_end
            sub.auto_renew = True
            sub.is_trial_active = False
            sub.cancelled_at = None
            sub.cancellation_reason = None
            sub.last_payment_date = paid_at
            sub.last_payment_amount = price
            sub.total_paid = Decimal(sub.total_paid or 0) + price

            await self.ledger.append(
                tenant_id=tenant_id,
                plan_id=plan.plan_id,
                plan_name=plan.name,
                amount=price,
                currency=plan.currency,
                billing_cycle=billing_cycle.value,
                period_start=now,
                period_end=period_end,
                outcome=outcome,
                payment_type=PaymentType.UPGRADE,
                now=now,
            )

        log_audit_event(
            "subscription.upgraded",
            "billing",
            user_id=actor_id,
            tenant_id=tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
            previous_plan=previous_plan,
            plan_name=plan.name,
            billing_cycle=billing_cycle.value,
            amount=str(price),
        )
        return sub.to_subscription()

    async def record_payment(
        self,
        tenant_id: str,
        outcome: PaymentOutcome,
        *,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Subscription:
        """
        Apply the renewal payment outcome of a due subscription.

        A completed payment with auto-renew on extends the term by one cycle.
        A failed payment, or auto-renew switched off, ends the subscription;
        there is no retry. A pending outcome changes nothing. The outcome must
        arrive before the renewal grace period runs out.
        """
        now = self.clock()
        async with self._transition(tenant_id, expected_version):
            tenant = await self._load(tenant_id)
            self._check_version(tenant, expected_version)
            sub = tenant.subscription
            stored = SubscriptionStatus(sub.status)

            if stored != SubscriptionStatus.ACTIVE:
                raise InvalidTransition(
                    f"Cannot renew a subscription in {stored.value} state",
                    current_state=stored.value,
                    event=SubscriptionEvent.RENEW.value,
                )
            renewal_date = sub.to_subscription().renewal_date
            if renewal_date is None or now < renewal_date:
                raise InvalidTransition(
                    f"Renewal for tenant {tenant_id} is not due until {renewal_date}",
                    current_state=stored.value,
                    event=SubscriptionEvent.RENEW.value,
                )
            lapsed = effective_status(sub.to_subscription(), now=now) == SubscriptionStatus.EXPIRED
            if sub.auto_renew and lapsed:
                raise InvalidTransition(
                    f"Renewal window of tenant {tenant_id} closed; upgrade instead",
                    current_state=SubscriptionStatus.EXPIRED.value,
                    event=SubscriptionEvent.RENEW.value,
                )
            if outcome.status == PaymentStatus.PENDING:
                raise PaymentNotConfirmed(
                    "Renewal payment is still pending", payment_status=outcome.status.value
                )

            cycle = BillingCycle(sub.billing_cycle)
            amount = Decimal(sub.amount)
            period_end = advance(renewal_date, cycle)

            if outcome.succeeded and sub.auto_renew:
                if outcome.amount is not None and outcome.amount != amount:
                    raise PaymentNotConfirmed(
                        f"Renewal payment of {outcome.amount} does not match {amount}",
                        payment_status=outcome.status.value,
                        expected_amount=amount,
                    )
                event = SubscriptionEvent.RENEW
                sub.status = next_status(stored, event).value
                sub.end_date = period_end
                sub.renewal_date = period_end
                sub.last_payment_date = outcome.paid_at or now
                sub.last_payment_amount = amount
                sub.total_paid = Decimal(sub.total_paid or 0) + amount
            else:
                event = SubscriptionEvent.RENEWAL_FAILED
                sub.status = next_status(stored, event).value
                if outcome.succeeded:
                    logger.warning(
                        "Completed payment received for a non-renewing subscription",
                        tenant_id=tenant_id,
                        gateway_transaction_id=outcome.gateway_transaction_id,
                    )

            if event == SubscriptionEvent.RENEW or outcome.status == PaymentStatus.FAILED:
                await self.ledger.append(
                    tenant_id=tenant_id,
                    plan_id=sub.plan_id,
                    plan_name=sub.plan_name,
                    amount=amount,
                    currency=sub.currency,
                    billing_cycle=cycle.value,
                    period_start=renewal_date,
                    period_end=period_end,
                    outcome=outcome,
                    payment_type=PaymentType.RENEWAL,
                    now=now,
                )

        log_audit_event(
            "subscription.renewed" if event == SubscriptionEvent.RENEW else "subscription.lapsed",
            "billing",
            user_id=actor_id,
            tenant_id=tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
            payment_status=outcome.status.value,
            auto_renew=sub.auto_renew,
        )
        return sub.to_subscription()

    async def suspend(
        self,
        tenant_id: str,
        reason: str = "No reason provided",
        *,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Subscription:
        """
        Suspend an active tenant.

        The paid term keeps running while suspended; ``end_date`` and
        ``renewal_date`` are not shifted.
        """
        now = self.clock()
        async with self._transition(tenant_id, expected_version):
            tenant = await self._load(tenant_id)
            self._check_version(tenant, expected_version)
            self._expire_if_lapsed(tenant, now)
            sub = tenant.subscription
            stored = SubscriptionStatus(sub.status)
            sub.status = next_status(stored, SubscriptionEvent.SUSPEND).value
            tenant.is_suspended = True
            tenant.suspension_reason = reason

        log_audit_event(
            "subscription.suspended",
            "billing",
            user_id=actor_id,
            tenant_id=tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
            reason=reason,
        )
        return sub.to_subscription()

    async def activate(
        self,
        tenant_id: str,
        *,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Subscription:
        """Lift a suspension, provided the paid window has not run out meanwhile."""
        now = self.clock()
        async with self._transition(tenant_id, expected_version):
            tenant = await self._load(tenant_id)
            self._check_version(tenant, expected_version)
            sub = tenant.subscription
            stored = SubscriptionStatus(sub.status)
            target = next_status(stored, SubscriptionEvent.ACTIVATE)

            end_date = sub.to_subscription().end_date
            if end_date is None or now >= end_date:
                raise InvalidTransition(
                    f"Paid term of tenant {tenant_id} ended on {end_date}; upgrade instead",
                    current_state=stored.value,
                    event=SubscriptionEvent.ACTIVATE.value,
                )

            sub.status = target.value
            tenant.is_suspended = False
            tenant.suspension_reason = None

        log_audit_event(
            "subscription.activated",
            "billing",
            user_id=actor_id,
            tenant_id=tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
        )
        return sub.to_subscription()

    async def cancel(
        self,
        tenant_id: str,
        reason: str | None = None,
        *,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Subscription:
        """Stop renewal. Access continues until the current window ends."""
        now = self.clock()
        async with self._transition(tenant_id, expected_version):
            tenant = await self._load(tenant_id)
            self._check_version(tenant, expected_version)
            self._expire_if_lapsed(tenant, now)
            sub = tenant.subscription
            stored = SubscriptionStatus(sub.status)
            sub.status = next_status(stored, SubscriptionEvent.CANCEL).value
            sub.auto_renew = False
            sub.cancelled_at = now
            sub.cancellation_reason = reason

        log_audit_event(
            "subscription.cancelled",
            "billing",
            user_id=actor_id,
            tenant_id=tenant_id,
            resource_type="subscription",
            resource_id=sub.subscription_id,
            reason=reason,
        )
        return sub.to_subscription()
