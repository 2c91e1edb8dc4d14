"""
Tenant subscription lifecycle.

The manager lives in ``uniflow.platform.billing.subscriptions.lifecycle``;
import it from there (it depends on the tenant models, which depend on these).
"""

from uniflow.platform.billing.subscriptions.models import (
    CancelRequest,
    RecordPaymentRequest,
    Subscription,
    SubscriptionEvent,
    SubscriptionFilters,
    SubscriptionListItem,
    SubscriptionPage,
    SubscriptionStatus,
    SubscriptionTable,
    SuspendRequest,
    UpgradeRequest,
)
from uniflow.platform.billing.subscriptions.state_machine import (
    TRANSITIONS,
    allowed_events,
    next_status,
)

__all__ = [
    "TRANSITIONS",
    "CancelRequest",
    "RecordPaymentRequest",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionFilters",
    "SubscriptionListItem",
    "SubscriptionPage",
    "SubscriptionStatus",
    "SubscriptionTable",
    "SuspendRequest",
    "UpgradeRequest",
    "allowed_events",
    "next_status",
]
