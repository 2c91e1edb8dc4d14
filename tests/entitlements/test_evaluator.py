"""
Tests for the entitlement evaluator.

The evaluator is pure: every test builds explicit snapshots and passes ``now``.
"""

from datetime import timedelta

import pytest

from uniflow.platform.auth.capabilities import Action, Feature
from uniflow.platform.billing.catalog.models import PlanFeatures, PlanLimits, SupportTier
from uniflow.platform.billing.subscriptions.models import SubscriptionStatus
from uniflow.platform.entitlements.evaluator import (
    RENEWAL_GRACE_PERIOD,
    TIER_DEFAULT_FEATURES,
    access_until,
    effective_status,
    evaluate,
    evaluate_tenant,
    feature_flags,
    term_lapses_at,
    trial_days_remaining,
)
from uniflow.platform.entitlements.models import PlanDenial

from tests.factories import T0, make_subscription, make_tenant, make_trial, make_usage

pytestmark = pytest.mark.unit

BASIC_LIMITS = PlanLimits(users=10, leads=5000, contacts=5000, deals=500, storage_mb=5120)
FREE_FEATURES = PlanFeatures(
    lead_management=True,
    contact_management=True,
    deal_tracking=True,
    task_management=True,
)


class TestEffectiveStatus:
    """Precedence: suspension, lapsed windows, stored status."""

    def test_operator_suspension_wins_over_everything(self):
        trial = make_trial()
        assert effective_status(trial, now=T0, is_suspended=True) == SubscriptionStatus.SUSPENDED

    def test_stored_suspension(self):
        suspended = make_subscription(status=SubscriptionStatus.SUSPENDED)
        assert effective_status(suspended, now=T0) == SubscriptionStatus.SUSPENDED

    def test_trial_expires_after_trial_end(self):
        trial = make_trial(days=15)
        end = T0 + timedelta(days=15)

        assert effective_status(trial, now=end) == SubscriptionStatus.TRIAL
        assert effective_status(trial, now=end + timedelta(seconds=1)) == (
            SubscriptionStatus.EXPIRED
        )

    def test_trial_flagged_expired(self):
        trial = make_trial(is_trial_expired=True)
        assert effective_status(trial, now=T0) == SubscriptionStatus.EXPIRED

    def test_non_renewing_term_expires_at_end_date(self):
        active = make_subscription(auto_renew=False)

        assert effective_status(active, now=active.end_date - timedelta(seconds=1)) == (
            SubscriptionStatus.ACTIVE
        )
        assert effective_status(active, now=active.end_date) == SubscriptionStatus.EXPIRED

    def test_auto_renewing_term_waits_for_the_renewal_outcome(self):
        active = make_subscription()
        lapses_at = active.end_date + RENEWAL_GRACE_PERIOD

        assert term_lapses_at(active) == lapses_at
        assert effective_status(active, now=active.end_date) == SubscriptionStatus.ACTIVE
        assert effective_status(active, now=lapses_at - timedelta(seconds=1)) == (
            SubscriptionStatus.ACTIVE
        )
        assert effective_status(active, now=lapses_at) == SubscriptionStatus.EXPIRED

    def test_cancelled_keeps_access_until_window_ends(self):
        cancelled = make_subscription(status=SubscriptionStatus.CANCELLED, auto_renew=False)

        assert access_until(cancelled) == cancelled.end_date
        assert effective_status(cancelled, now=T0) == SubscriptionStatus.CANCELLED
        assert effective_status(cancelled, now=cancelled.end_date) == SubscriptionStatus.EXPIRED

    def test_cancelled_trial_uses_trial_window(self):
        cancelled = make_trial(status=SubscriptionStatus.CANCELLED)

        assert access_until(cancelled) == cancelled.trial_end_date
        assert effective_status(cancelled, now=T0) == SubscriptionStatus.CANCELLED

    def test_stored_expired_stays_expired(self):
        expired = make_subscription(status=SubscriptionStatus.EXPIRED)
        assert effective_status(expired, now=T0) == SubscriptionStatus.EXPIRED
        assert access_until(expired) is None


class TestTrialCountdown:
    """Tests for the whole-day trial countdown."""

    def test_full_trial_on_day_one(self):
        assert trial_days_remaining(make_trial(days=15), now=T0) == 15

    def test_partial_days_round_up(self):
        trial = make_trial(days=15)
        assert trial_days_remaining(trial, now=T0 + timedelta(hours=1)) == 15
        assert trial_days_remaining(trial, now=T0 + timedelta(days=14, hours=12)) == 1

    def test_zero_at_and_after_end(self):
        trial = make_trial(days=15)
        assert trial_days_remaining(trial, now=T0 + timedelta(days=15)) == 0
        assert trial_days_remaining(trial, now=T0 + timedelta(days=40)) == 0

    def test_countdown_never_increases(self):
        trial = make_trial(days=15)
        samples = [
            trial_days_remaining(trial, now=T0 + timedelta(hours=hours))
            for hours in range(0, 24 * 17, 7)
        ]
        assert samples == sorted(samples, reverse=True)

    def test_no_countdown_once_paid(self):
        active = make_subscription()
        assert trial_days_remaining(active, now=T0) == 0

    def test_no_countdown_while_suspended(self):
        trial = make_trial()
        assert trial_days_remaining(trial, now=T0, is_suspended=True) == 0


class TestLimitsAndFeatures:
    """Tests for limit and feature flags."""

    def test_limit_reached_at_the_limit(self):
        sub = make_subscription(limits=BASIC_LIMITS)
        entitlement = evaluate(sub, make_usage(users=10, leads=4999), now=T0)

        assert entitlement.limit_flags["users"] is True
        assert entitlement.limit_flags["leads"] is False
        assert entitlement.is_limit_reached("users") is True

    def test_unlimited_is_never_reached(self):
        sub = make_subscription()
        entitlement = evaluate(sub, make_usage(leads=10_000_000), now=T0)

        assert entitlement.limit_flags["leads"] is False

    def test_unknown_usage_blocks_limited_resources_only(self):
        sub = make_subscription(limits=BASIC_LIMITS)
        entitlement = evaluate(sub, make_usage(leads=None, contacts=None), now=T0)
        unlimited = evaluate(make_subscription(), make_usage(leads=None), now=T0)

        assert entitlement.limit_flags["leads"] is True
        assert entitlement.usage["leads"] is None
        assert set(entitlement.unknown_usage) == {"leads", "contacts"}
        assert unlimited.unknown_usage == []

    def test_core_features_always_on(self):
        sub = make_subscription(features=PlanFeatures())
        flags = feature_flags(sub)

        for name in TIER_DEFAULT_FEATURES:
            assert flags[name] is True
        assert flags["advanced_reports"] is False

    def test_snapshot_features_switch_on(self):
        flags = feature_flags(make_subscription())
        assert flags["advanced_reports"] is True
        assert flags["white_labeling"] is False

    def test_support_defaults_to_email_without_plan(self):
        entitlement = evaluate(make_subscription(), make_usage(), now=T0)
        assert entitlement.support == SupportTier.EMAIL


class TestEvaluate:
    """Tests for the combined entitlement."""

    def test_identical_inputs_identical_output(self):
        sub = make_subscription()
        usage = make_usage(users=3)

        assert evaluate(sub, usage, now=T0) == evaluate(sub, usage, now=T0)

    def test_days_remaining_on_active_term(self):
        sub = make_subscription()
        entitlement = evaluate(sub, make_usage(), now=T0 + timedelta(days=1))

        assert entitlement.effective_status == SubscriptionStatus.ACTIVE
        assert entitlement.stored_status == SubscriptionStatus.ACTIVE
        assert entitlement.days_remaining == 30
        assert entitlement.is_usable is True

    def test_lazily_expired_trial(self):
        trial = make_trial(days=15)
        entitlement = evaluate(trial, make_usage(), now=T0 + timedelta(days=16))

        assert entitlement.effective_status == SubscriptionStatus.EXPIRED
        assert entitlement.stored_status == SubscriptionStatus.TRIAL
        assert entitlement.trial_days_remaining == 0
        assert entitlement.days_remaining == 0
        assert entitlement.is_usable is False

    def test_evaluate_tenant_honours_operator_suspension(self):
        tenant = make_tenant(make_subscription(), is_suspended=True)
        entitlement = evaluate_tenant(tenant, make_usage(), now=T0)

        assert entitlement.effective_status == SubscriptionStatus.SUSPENDED
        assert entitlement.days_remaining == 31


class TestPlanSide:
    """Tests for ``Entitlement.allows``."""

    def test_expired_keeps_read_only(self):
        expired = evaluate(
            make_subscription(status=SubscriptionStatus.EXPIRED), make_usage(), now=T0
        )

        assert expired.allows(Feature.LEAD_MANAGEMENT, Action.READ).allowed is True
        denied = expired.allows(Feature.LEAD_MANAGEMENT, Action.CREATE)
        assert denied.allowed is False
        assert denied.detail == PlanDenial.EXPIRED

    def test_suspended_denies_reads_too(self):
        suspended = evaluate(
            make_subscription(status=SubscriptionStatus.SUSPENDED), make_usage(), now=T0
        )
        decision = suspended.allows(Feature.CONTACT_MANAGEMENT, Action.READ)

        assert decision.allowed is False
        assert decision.detail == PlanDenial.SUSPENDED

    def test_feature_outside_plan(self):
        free = evaluate(make_subscription(features=FREE_FEATURES), make_usage(), now=T0)

        export = free.allows(Feature.REPORT_MANAGEMENT, Action.EXPORT)
        assert export.allowed is False
        assert export.detail == PlanDenial.FEATURE_NOT_IN_PLAN
        assert export.plan_feature == "advanced_reports"
        assert free.allows(Feature.REPORT_MANAGEMENT, Action.READ).allowed is True

    def test_consuming_action_at_limit(self):
        entitlement = evaluate(
            make_subscription(limits=BASIC_LIMITS), make_usage(users=10), now=T0
        )

        decision = entitlement.allows(Feature.USER_MANAGEMENT, Action.CREATE)
        assert decision.allowed is False
        assert decision.detail == PlanDenial.LIMIT_REACHED
        assert decision.resource == "users"
        assert entitlement.allows(Feature.USER_MANAGEMENT, Action.UPDATE).allowed is True

    def test_consuming_action_with_unknown_usage(self):
        entitlement = evaluate(
            make_subscription(limits=BASIC_LIMITS), make_usage(leads=None), now=T0
        )

        decision = entitlement.allows(Feature.DATA_CENTER, Action.MOVE_TO_LEADS)
        assert decision.allowed is False
        assert decision.detail == PlanDenial.USAGE_UNKNOWN
        assert decision.resource == "leads"
