"""
Subscription lifecycle transition table.

The table is the single place that says which event may fire from which
stored status. Guards that depend on time or payment outcome live in the
lifecycle manager; this module only answers "is the edge there at all".
"""

from uniflow.platform.billing.exceptions import InvalidTransition
from uniflow.platform.billing.subscriptions.models import SubscriptionEvent, SubscriptionStatus

TRANSITIONS: dict[tuple[SubscriptionStatus, SubscriptionEvent], SubscriptionStatus] = {
    (SubscriptionStatus.TRIAL, SubscriptionEvent.TRIAL_ELAPSED): SubscriptionStatus.EXPIRED,
    (SubscriptionStatus.TRIAL, SubscriptionEvent.UPGRADE): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.TRIAL, SubscriptionEvent.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.EXPIRED, SubscriptionEvent.UPGRADE): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.TERM_ELAPSED): SubscriptionStatus.EXPIRED,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.RENEW): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.RENEWAL_FAILED): SubscriptionStatus.EXPIRED,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.SUSPEND): SubscriptionStatus.SUSPENDED,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.SUSPENDED, SubscriptionEvent.ACTIVATE): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.CANCELLED, SubscriptionEvent.TERM_ELAPSED): SubscriptionStatus.EXPIRED,
}


def allowed_events(status: SubscriptionStatus) -> list[SubscriptionEvent]:
    """Events that may fire from ``status``."""
    return [event for (source, event) in TRANSITIONS if source == status]


def next_status(status: SubscriptionStatus, event: SubscriptionEvent) -> SubscriptionStatus:
    """Target status of ``event`` or ``InvalidTransition`` when there is no such edge."""
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransition(
            f"Cannot {event.value} a subscription in {status.value} state",
            current_state=status.value,
            event=event.value,
        ) from None
