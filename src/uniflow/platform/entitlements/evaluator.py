"""
Entitlement evaluator.

Pure functions over explicit inputs: the subscription snapshot, a usage
snapshot, the catalog plan and ``now``. Nothing here reads the clock or the
database, so identical inputs always give identical output.

Lazy expiry lives here. A trial, paid or cancelled window that has lapsed is
reported as ``expired`` even while the stored status still says otherwise;
the lifecycle manager persists that on its next write. An auto-renewing term
stays active for ``RENEWAL_GRACE_PERIOD`` past its renewal date so the renewal
payment outcome can still be recorded.
"""

import math
from datetime import datetime, timedelta

from uniflow.platform.billing.catalog.models import UNLIMITED, MeteredResource, Plan, SupportTier
from uniflow.platform.billing.subscriptions.models import Subscription, SubscriptionStatus
from uniflow.platform.entitlements.models import Entitlement
from uniflow.platform.tenant.models import Tenant
from uniflow.platform.usage.models import UsageSnapshot

# Core CRM features every tier includes; plans switch further features on.
TIER_DEFAULT_FEATURES: dict[str, bool] = {
    "lead_management": True,
    "contact_management": True,
    "deal_tracking": True,
    "task_management": True,
}

_ONE_DAY = timedelta(days=1)

# How long an auto-renewing term waits for its renewal payment outcome
RENEWAL_GRACE_PERIOD = timedelta(days=3)


def access_until(subscription: Subscription) -> datetime | None:
    """End of the window that currently grants access, if any."""
    status = subscription.status
    if status == SubscriptionStatus.TRIAL:
        return subscription.trial_end_date
    if status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.SUSPENDED):
        return subscription.end_date
    if status == SubscriptionStatus.CANCELLED:
        # Cancelled during a trial keeps the trial window; otherwise the paid one
        return subscription.end_date or subscription.trial_end_date
    return None


def term_lapses_at(subscription: Subscription) -> datetime | None:
    """When an active paid term stops granting access without a renewal."""
    if subscription.end_date is None:
        return None
    if subscription.auto_renew:
        return subscription.end_date + RENEWAL_GRACE_PERIOD
    return subscription.end_date


def effective_status(
    subscription: Subscription, *, now: datetime, is_suspended: bool = False
) -> SubscriptionStatus:
    """
    The single status a tenant is in at ``now``.

    Precedence: operator suspension, stored suspension, lapsed windows, then
    the stored status.
    """
    status = subscription.status
    if is_suspended or status == SubscriptionStatus.SUSPENDED:
        return SubscriptionStatus.SUSPENDED

    if status == SubscriptionStatus.TRIAL:
        if subscription.is_trial_expired:
            return SubscriptionStatus.EXPIRED
        if subscription.trial_end_date is not None and now > subscription.trial_end_date:
            return SubscriptionStatus.EXPIRED
        return SubscriptionStatus.TRIAL

    if status == SubscriptionStatus.ACTIVE:
        lapses_at = term_lapses_at(subscription)
        if lapses_at is not None and now >= lapses_at:
            return SubscriptionStatus.EXPIRED
        return SubscriptionStatus.ACTIVE

    if status == SubscriptionStatus.CANCELLED:
        until = access_until(subscription)
        if until is None or now >= until:
            return SubscriptionStatus.EXPIRED
        return SubscriptionStatus.CANCELLED

    return status


def _days_until(moment: datetime | None, now: datetime) -> int:
    if moment is None:
        return 0
    return max(0, math.ceil((moment - now) / _ONE_DAY))


def trial_days_remaining(
    subscription: Subscription, *, now: datetime, is_suspended: bool = False
) -> int:
    """Whole days left in the trial, rounded up; 0 once the trial is over."""
    if not subscription.is_trial_active or subscription.is_trial_expired:
        return 0
    if effective_status(subscription, now=now, is_suspended=is_suspended) not in (
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.CANCELLED,
    ):
        return 0
    return _days_until(subscription.trial_end_date, now)


def limit_flags(subscription: Subscription, usage: UsageSnapshot) -> dict[str, bool]:
    """``True`` where the tenant may not consume more of a resource."""
    flags: dict[str, bool] = {}
    for resource in MeteredResource:
        limit = subscription.limits.limit_for(resource)
        used = usage.get(resource)
        if limit == UNLIMITED:
            flags[resource.value] = False
        elif used is None:
            flags[resource.value] = True
        else:
            flags[resource.value] = used >= limit
    return flags


def feature_flags(subscription: Subscription) -> dict[str, bool]:
    """Tier defaults with the snapshotted plan features switched on top."""
    flags = {name: False for name in subscription.features.model_dump()}
    flags.update(TIER_DEFAULT_FEATURES)
    for name, enabled in subscription.features.model_dump().items():
        if enabled:
            flags[name] = True
    return flags


def evaluate(
    subscription: Subscription,
    usage: UsageSnapshot,
    plan: Plan | None = None,
    *,
    now: datetime,
    is_suspended: bool = False,
) -> Entitlement:
    """Resolve a subscription, live usage and the catalog plan into an entitlement."""
    status = effective_status(subscription, now=now, is_suspended=is_suspended)
    until = access_until(subscription)

    days_remaining = 0
    if status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.SUSPENDED):
        days_remaining = _days_until(subscription.end_date, now)
    elif status in (SubscriptionStatus.TRIAL, SubscriptionStatus.CANCELLED):
        days_remaining = _days_until(until, now)

    return Entitlement(
        tenant_id=subscription.tenant_id,
        plan_id=subscription.plan_id,
        plan_name=subscription.plan_name,
        evaluated_at=now,
        effective_status=status,
        stored_status=subscription.status,
        trial_days_remaining=trial_days_remaining(
            subscription, now=now, is_suspended=is_suspended
        ),
        days_remaining=days_remaining,
        access_until=until,
        support=plan.support if plan is not None else SupportTier.EMAIL,
        limits=subscription.limits,
        usage={resource.value: usage.get(resource) for resource in MeteredResource},
        limit_flags=limit_flags(subscription, usage),
        feature_flags=feature_flags(subscription),
        unknown_usage=[
            resource.value
            for resource in usage.unknown
            if subscription.limits.limit_for(resource) != UNLIMITED
        ],
    )


def evaluate_tenant(
    tenant: Tenant, usage: UsageSnapshot, plan: Plan | None = None, *, now: datetime
) -> Entitlement:
    """Evaluate a tenant snapshot, taking the operator suspension flag from it."""
    return evaluate(
        tenant.subscription, usage, plan, now=now, is_suspended=tenant.is_suspended
    )
