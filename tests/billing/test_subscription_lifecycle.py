"""
Tests for the subscription lifecycle manager.

Covers:
- Tenant registration onto a trial
- Upgrade, renewal, suspension, activation and cancellation
- Lazy expiry and its write-back by reconcile
- Optimistic locking (racing writers, stale expected versions)
- Reseller attribution at registration
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta

from uniflow.platform.billing.catalog.models import BillingCycle
from uniflow.platform.billing.exceptions import (
    ConflictError,
    InvalidTransition,
    PaymentNotConfirmed,
    ResellerNotApprovedError,
    ResellerNotFoundError,
    TenantNotFoundError,
)
from uniflow.platform.billing.payments.ledger import PaymentLedger
from uniflow.platform.billing.payments.models import PaymentStatus, PaymentType
from uniflow.platform.billing.subscriptions.lifecycle import (
    SubscriptionLifecycleManager,
    advance,
    slugify,
)
from uniflow.platform.billing.subscriptions.models import (
    SubscriptionEvent,
    SubscriptionFilters,
    SubscriptionStatus,
    SubscriptionTable,
)
from uniflow.platform.billing.subscriptions.state_machine import (
    TRANSITIONS,
    allowed_events,
    next_status,
)
from uniflow.platform.entitlements.evaluator import RENEWAL_GRACE_PERIOD, effective_status
from uniflow.platform.partner_management.models import ResellerStatus

from tests.factories import T0, completed, failed, pending

pytestmark = pytest.mark.integration


async def _upgrade(manager, tenant, plans, name="Professional", cycle=BillingCycle.MONTHLY):
    plan = plans[name]
    return await manager.upgrade(
        tenant.tenant_id, plan.plan_id, cycle, completed(plan.price_for(cycle))
    )


@pytest.mark.unit
class TestTransitionTable:
    """Tests for the transition table itself."""

    def test_every_edge_is_listed(self):
        assert len(TRANSITIONS) == 11
        assert set(allowed_events(SubscriptionStatus.EXPIRED)) == {SubscriptionEvent.UPGRADE}
        assert set(allowed_events(SubscriptionStatus.SUSPENDED)) == {SubscriptionEvent.ACTIVATE}

    def test_missing_edge_raises_with_current_state(self):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(SubscriptionStatus.CANCELLED, SubscriptionEvent.UPGRADE)

        error = exc_info.value
        assert error.current_state == "cancelled"
        assert error.event == "upgrade"
        assert error.status_code == 409
        assert error.to_dict()["error_code"] == "INVALID_TRANSITION"

    def test_advance_uses_calendar_months(self):
        """One month from 31 January lands on the last day of February."""
        jan_31 = T0.replace(day=31)
        assert advance(jan_31, BillingCycle.MONTHLY) == T0.replace(month=2, day=28)
        assert advance(T0, BillingCycle.YEARLY) == T0.replace(year=2026)

    def test_slugify(self):
        assert slugify("Acme Traders Pvt. Ltd.") == "acme-traders-pvt-ltd"
        assert slugify("!!!") == "organization"


class TestCreateTenant:
    """Tests for tenant registration."""

    @pytest.mark.asyncio
    async def test_new_tenant_starts_on_trial(self, manager, plans, tenant_factory):
        tenant = await tenant_factory("Acme Traders")
        subscription = tenant.subscription

        assert tenant.organization_id == "UFS001"
        assert tenant.slug == "acme-traders-ufs001"
        assert tenant.is_suspended is False
        assert subscription.status == SubscriptionStatus.TRIAL
        assert subscription.plan_id == plans["Professional"].plan_id
        assert subscription.amount == Decimal("0")
        assert subscription.trial_start_date == T0
        assert subscription.trial_end_date == T0 + timedelta(days=15)
        assert subscription.is_trial_active is True
        assert subscription.limits == plans["Professional"].limits
        assert subscription.version == 1

    @pytest.mark.asyncio
    async def test_organization_ids_are_sequential(self, tenant_factory):
        first = await tenant_factory()
        second = await tenant_factory()

        assert first.organization_id == "UFS001"
        assert second.organization_id == "UFS002"

    @pytest.mark.asyncio
    async def test_trial_plan_can_be_chosen(self, plans, tenant_factory):
        tenant = await tenant_factory(trial_plan_id=plans["Enterprise"].plan_id)

        assert tenant.subscription.plan_name == "Enterprise"
        assert tenant.subscription.trial_end_date == T0 + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, manager, plans):
        with pytest.raises(TenantNotFoundError):
            await manager.get_current_subscription("ten_missing")


class TestReconcile:
    """Lazy expiry is reported by reads and persisted by the next write."""

    @pytest.mark.asyncio
    async def test_lapsed_trial_is_written_back(self, manager, clock, tenant_factory):
        tenant = await tenant_factory()
        clock.advance(days=16)

        stored = await manager.get_current_subscription(tenant.tenant_id)
        assert stored.status == SubscriptionStatus.TRIAL
        assert effective_status(stored, now=clock()) == SubscriptionStatus.EXPIRED

        reconciled = await manager.reconcile(tenant.tenant_id)
        assert reconciled.status == SubscriptionStatus.EXPIRED
        assert reconciled.is_trial_active is False
        assert reconciled.is_trial_expired is True

    @pytest.mark.asyncio
    async def test_trial_still_running_is_untouched(self, manager, clock, tenant_factory):
        tenant = await tenant_factory()
        clock.advance(days=14, hours=23)

        reconciled = await manager.reconcile(tenant.tenant_id)

        assert reconciled.status == SubscriptionStatus.TRIAL
        assert reconciled.version == 1

    @pytest.mark.asyncio
    async def test_reconcile_all_counts_changes(self, manager, plans, clock, tenant_factory):
        paying = await tenant_factory()
        await _upgrade(manager, paying, plans)
        await tenant_factory()
        clock.advance(days=16)

        assert await manager.reconcile_all() == 1
        assert await manager.reconcile_all() == 0


class TestUpgrade:
    """Tests for trial/expired -> active."""

    @pytest.mark.asyncio
    async def test_upgrade_from_trial(self, manager, plans, clock, tenant_factory):
        tenant = await tenant_factory()
        now = clock.advance(days=1)

        subscription = await _upgrade(manager, tenant, plans)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.amount == Decimal("2999")
        assert subscription.start_date == now
        assert subscription.end_date == now + relativedelta(months=1)
        assert subscription.renewal_date == subscription.end_date
        assert subscription.is_trial_active is False
        assert subscription.total_paid == Decimal("2999")
        assert subscription.last_payment_date == now
        assert subscription.version == 2

    @pytest.mark.asyncio
    async def test_yearly_upgrade(self, manager, plans, tenant_factory):
        tenant = await tenant_factory()

        subscription = await _upgrade(manager, tenant, plans, "Basic", BillingCycle.YEARLY)

        assert subscription.amount == Decimal("9990")
        assert subscription.billing_cycle == BillingCycle.YEARLY
        assert subscription.end_date == T0 + relativedelta(years=1)
        assert subscription.limits == plans["Basic"].limits

    @pytest.mark.asyncio
    async def test_upgrade_after_trial_lapsed(self, manager, plans, clock, tenant_factory):
        tenant = await tenant_factory()
        clock.advance(days=20)

        subscription = await _upgrade(manager, tenant, plans, "Basic")

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.is_trial_expired is True

    @pytest.mark.asyncio
    async def test_upgrade_writes_invoiced_ledger_entry(
        self, async_db_session, manager, plans, tenant_factory
    ):
        tenant = await tenant_factory()
        await _upgrade(manager, tenant, plans)

        payments = await PaymentLedger(async_db_session).list_payments(tenant.tenant_id)

        assert len(payments) == 1
        assert payments[0].payment_type == PaymentType.UPGRADE
        assert payments[0].status == PaymentStatus.COMPLETED
        assert payments[0].invoice_number == "INV-202501-000001"
        assert payments[0].amount == Decimal("2999")

    @pytest.mark.asyncio
    async def test_failed_payment_leaves_no_trace(
        self, async_db_session, manager, plans, tenant_factory
    ):
        """A refused upgrade commits nothing: no status change, no ledger line."""
        tenant = await tenant_factory()

        with pytest.raises(PaymentNotConfirmed) as exc_info:
            await manager.upgrade(
                tenant.tenant_id, plans["Professional"].plan_id, BillingCycle.MONTHLY, failed()
            )

        assert exc_info.value.status_code == 402
        assert exc_info.value.context["payment_status"] == "failed"
        subscription = await manager.get_current_subscription(tenant.tenant_id)
        assert subscription.status == SubscriptionStatus.TRIAL
        assert subscription.version == 1
        assert await PaymentLedger(async_db_session).list_payments(tenant.tenant_id) == []

    @pytest.mark.asyncio
    async def test_amount_must_match_plan_price(self, manager, plans, tenant_factory):
        tenant = await tenant_factory()

        with pytest.raises(PaymentNotConfirmed) as exc_info:
            await manager.upgrade(
                tenant.tenant_id,
                plans["Professional"].plan_id,
                BillingCycle.MONTHLY,
                completed("1999"),
            )

        assert Decimal(exc_info.value.context["expected_amount"]) == Decimal("2999")

    @pytest.mark.asyncio
    async def test_active_tenant_cannot_upgrade(self, manager, plans, tenant_factory):
        tenant = await tenant_factory()
        await _upgrade(manager, tenant, plans, "Basic")

        with pytest.raises(InvalidTransition) as exc_info:
            await _upgrade(manager, tenant, plans, "Enterprise")

        assert exc_info.value.current_state == "active"


class TestRenewal:
    """Tests for renewal payment outcomes."""

    @pytest.mark.asyncio
    async def test_completed_payment_extends_from_renewal_date(
        self, async_db_session, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        clock.set(first.renewal_date + timedelta(hours=3))

        renewed = await manager.record_payment(tenant.tenant_id, completed("2999"))

        assert renewed.status == SubscriptionStatus.ACTIVE
        assert renewed.end_date == first.renewal_date + relativedelta(months=1)
        assert renewed.renewal_date == renewed.end_date
        assert renewed.total_paid == Decimal("5998")
        payments = await PaymentLedger(async_db_session).list_payments(tenant.tenant_id)
        assert {p.invoice_number for p in payments} == {
            "INV-202501-000001",
            "INV-202502-000002",
        }

    @pytest.mark.asyncio
    async def test_failed_payment_expires_without_retry(
        self, async_db_session, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        clock.set(first.renewal_date)

        lapsed = await manager.record_payment(tenant.tenant_id, failed(notes="card declined"))

        assert lapsed.status == SubscriptionStatus.EXPIRED
        assert lapsed.end_date == first.end_date
        payments = await PaymentLedger(async_db_session).list_payments(tenant.tenant_id)
        failed_entry = next(p for p in payments if p.status == PaymentStatus.FAILED)
        assert failed_entry.invoice_number is None
        assert failed_entry.payment_type == PaymentType.RENEWAL

    @pytest.mark.asyncio
    async def test_pending_payment_changes_nothing(self, manager, plans, clock, tenant_factory):
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        clock.set(first.renewal_date)

        with pytest.raises(PaymentNotConfirmed):
            await manager.record_payment(tenant.tenant_id, pending())

        subscription = await manager.get_current_subscription(tenant.tenant_id)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.version == first.version

    @pytest.mark.asyncio
    async def test_renewal_before_due_date_is_rejected(
        self, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        await _upgrade(manager, tenant, plans)
        clock.advance(days=10)

        with pytest.raises(InvalidTransition):
            await manager.record_payment(tenant.tenant_id, completed("2999"))

    @pytest.mark.asyncio
    async def test_auto_renew_off_expires_even_when_paid(
        self, async_db_session, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        row = await async_db_session.get(SubscriptionTable, first.subscription_id)
        row.auto_renew = False
        await async_db_session.commit()
        clock.set(first.renewal_date)

        lapsed = await manager.record_payment(tenant.tenant_id, completed("2999"))

        assert lapsed.status == SubscriptionStatus.EXPIRED
        payments = await PaymentLedger(async_db_session).list_payments(tenant.tenant_id)
        assert [p.payment_type for p in payments] == [PaymentType.UPGRADE]

    @pytest.mark.asyncio
    async def test_due_renewal_survives_a_reconcile_sweep(
        self, manager, plans, clock, tenant_factory
    ):
        """Reaching the renewal date does not expire an auto-renewing term by itself."""
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        clock.set(first.renewal_date)

        swept = await manager.reconcile(tenant.tenant_id)
        assert swept.status == SubscriptionStatus.ACTIVE
        assert effective_status(swept, now=clock()) == SubscriptionStatus.ACTIVE

        clock.advance(days=1)
        renewed = await manager.record_payment(tenant.tenant_id, completed("2999"))

        assert renewed.status == SubscriptionStatus.ACTIVE
        assert renewed.end_date == first.renewal_date + relativedelta(months=1)

    @pytest.mark.asyncio
    async def test_renewal_after_grace_period_is_refused(
        self, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        first = await _upgrade(manager, tenant, plans)
        clock.set(first.renewal_date + RENEWAL_GRACE_PERIOD)

        with pytest.raises(InvalidTransition) as exc_info:
            await manager.record_payment(tenant.tenant_id, completed("2999"))

        assert exc_info.value.current_state == "expired"
        assert (await manager.reconcile(tenant.tenant_id)).status == SubscriptionStatus.EXPIRED


class TestSuspendActivate:
    """Tests for operator suspension."""

    @pytest.mark.asyncio
    async def test_round_trip_keeps_term_and_amount(self, manager, plans, clock, tenant_factory):
        tenant = await tenant_factory()
        active = await _upgrade(manager, tenant, plans)
        clock.advance(days=5)

        suspended = await manager.suspend(tenant.tenant_id, "Chargeback under review")
        assert suspended.status == SubscriptionStatus.SUSPENDED
        suspended_tenant = await manager.get_tenant(tenant.tenant_id)
        assert suspended_tenant.is_suspended is True
        assert suspended_tenant.suspension_reason == "Chargeback under review"

        clock.advance(days=5)
        reactivated = await manager.activate(tenant.tenant_id)

        assert reactivated.status == SubscriptionStatus.ACTIVE
        assert reactivated.end_date == active.end_date
        assert reactivated.renewal_date == active.renewal_date
        assert reactivated.amount == active.amount
        assert (await manager.get_tenant(tenant.tenant_id)).is_suspended is False

    @pytest.mark.asyncio
    async def test_trial_cannot_be_suspended(self, manager, tenant_factory):
        tenant = await tenant_factory()

        with pytest.raises(InvalidTransition) as exc_info:
            await manager.suspend(tenant.tenant_id)

        assert exc_info.value.current_state == "trial"
        assert exc_info.value.event == "suspend"

    @pytest.mark.asyncio
    async def test_lapsed_term_is_detected_before_suspending(
        self, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        active = await _upgrade(manager, tenant, plans)
        clock.set(active.end_date + RENEWAL_GRACE_PERIOD + timedelta(days=1))

        with pytest.raises(InvalidTransition) as exc_info:
            await manager.suspend(tenant.tenant_id)

        assert exc_info.value.current_state == "expired"

    @pytest.mark.asyncio
    async def test_activate_after_term_ended_is_rejected(
        self, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        active = await _upgrade(manager, tenant, plans)
        await manager.suspend(tenant.tenant_id)
        clock.set(active.end_date + timedelta(days=1))

        with pytest.raises(InvalidTransition) as exc_info:
            await manager.activate(tenant.tenant_id)

        assert exc_info.value.current_state == "suspended"


class TestCancel:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_access_continues_until_end_of_term(
        self, manager, plans, clock, tenant_factory
    ):
        tenant = await tenant_factory()
        active = await _upgrade(manager, tenant, plans)
        now = clock.advance(days=10)

        cancelled = await manager.cancel(tenant.tenant_id, "Switching vendors")

        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert cancelled.auto_renew is False
        assert cancelled.cancelled_at == now
        assert cancelled.cancellation_reason == "Switching vendors"
        assert effective_status(cancelled, now=now) == SubscriptionStatus.CANCELLED
        assert effective_status(cancelled, now=active.end_date) == SubscriptionStatus.EXPIRED

        clock.set(active.end_date)
        assert (await manager.reconcile(tenant.tenant_id)).status == SubscriptionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_cancel_during_trial_keeps_trial_window(self, manager, clock, tenant_factory):
        tenant = await tenant_factory()
        clock.advance(days=3)

        cancelled = await manager.cancel(tenant.tenant_id)

        assert effective_status(cancelled, now=clock()) == SubscriptionStatus.CANCELLED
        assert (
            effective_status(cancelled, now=T0 + timedelta(days=15))
            == SubscriptionStatus.EXPIRED
        )

    @pytest.mark.asyncio
    async def test_cancel_twice_is_rejected(self, manager, tenant_factory):
        tenant = await tenant_factory()
        await manager.cancel(tenant.tenant_id)

        with pytest.raises(InvalidTransition) as exc_info:
            await manager.cancel(tenant.tenant_id)

        assert exc_info.value.current_state == "cancelled"


class TestOptimisticLocking:
    """Racing writers for one tenant cannot both succeed."""

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, manager, plans, tenant_factory):
        tenant = await tenant_factory()
        await _upgrade(manager, tenant, plans)

        with pytest.raises(ConflictError) as exc_info:
            await manager.suspend(tenant.tenant_id, expected_version=1)

        error = exc_info.value
        assert error.status_code == 409
        assert error.retryable is True
        assert error.context == {"tenant_id": tenant.tenant_id, "expected_version": 1}

    @pytest.mark.asyncio
    async def test_concurrent_write_is_rejected(
        self, async_session_maker, manager, plans, clock, test_settings, tenant_factory, monkeypatch
    ):
        """The second of two interleaved writers is refused and the first one's write stands."""
        tenant = await tenant_factory()
        active = await _upgrade(manager, tenant, plans)

        async with async_session_maker() as other_session:
            racing = SubscriptionLifecycleManager(
                other_session, clock=clock, settings=test_settings
            )
            load = racing._load

            async def load_then_lose_the_race(tenant_id: str):
                loaded = await load(tenant_id)
                await manager.suspend(tenant_id, "Chargeback under review")
                return loaded

            monkeypatch.setattr(racing, "_load", load_then_lose_the_race)

            with pytest.raises(ConflictError) as exc_info:
                await racing.cancel(tenant.tenant_id, "Switching vendors")

        assert exc_info.value.retryable is True
        current = await manager.get_current_subscription(tenant.tenant_id)
        assert current.status == SubscriptionStatus.SUSPENDED
        assert current.version == active.version + 1
        assert current.cancelled_at is None
        assert current.auto_renew is True


class TestResellerAttribution:
    """Tenants may be attributed to an approved reseller at registration."""

    @pytest.mark.asyncio
    async def test_rate_is_copied_from_reseller(self, tenant_factory, reseller_factory):
        reseller = await reseller_factory()

        tenant = await tenant_factory(reseller_id=reseller.reseller_id)

        assert tenant.reseller_id == reseller.reseller_id
        assert tenant.commission_rate == Decimal("10")

    @pytest.mark.asyncio
    async def test_pending_reseller_is_refused(self, tenant_factory, reseller_factory):
        reseller = await reseller_factory(status=ResellerStatus.PENDING)

        with pytest.raises(ResellerNotApprovedError) as exc_info:
            await tenant_factory(reseller_id=reseller.reseller_id)

        assert exc_info.value.context["status"] == "pending"

    @pytest.mark.asyncio
    async def test_unknown_reseller_is_refused(self, tenant_factory):
        with pytest.raises(ResellerNotFoundError):
            await tenant_factory(reseller_id="rsl_missing")


class TestListSubscriptions:
    """Operator listing filters on the effective status."""

    @pytest.mark.asyncio
    async def test_filters_and_pagination(
        self, manager, plans, clock, tenant_factory, reseller_factory
    ):
        reseller = await reseller_factory()
        paying = await tenant_factory(reseller_id=reseller.reseller_id)
        await _upgrade(manager, paying, plans, "Basic")
        await tenant_factory()
        await tenant_factory()

        everything = await manager.list_subscriptions()
        active = await manager.list_subscriptions(
            SubscriptionFilters(status=SubscriptionStatus.ACTIVE)
        )
        basic = await manager.list_subscriptions(SubscriptionFilters(plan_name="basic"))
        referred = await manager.list_subscriptions(
            SubscriptionFilters(reseller_id=reseller.reseller_id)
        )
        first_page = await manager.list_subscriptions(SubscriptionFilters(page_size=2))

        assert everything.total == 3
        assert [item.tenant_id for item in active.items] == [paying.tenant_id]
        assert basic.total == 1
        assert referred.total == 1
        assert first_page.total == 3
        assert len(first_page.items) == 2

        clock.advance(days=16)
        expired = await manager.list_subscriptions(
            SubscriptionFilters(status=SubscriptionStatus.EXPIRED)
        )
        assert expired.total == 2
        assert all(item.subscription.status == SubscriptionStatus.TRIAL for item in expired.items)
