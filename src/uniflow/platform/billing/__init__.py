"""
Billing system module.

Provides the subscription side of the platform:
- Plan catalog
- Subscription lifecycle (trial, upgrade, renewal, suspension, cancellation)
- Append-only payment ledger
- Money helpers
"""

from uniflow.platform.billing.exceptions import (
    BillingError,
    ConflictError,
    InvalidTransition,
    PaymentError,
    PaymentLedgerError,
    PaymentNotConfirmed,
    PlanNotFoundError,
    ResellerNotApprovedError,
    ResellerNotFoundError,
    SubscriptionError,
    TenantNotFoundError,
)

__all__ = [
    "BillingError",
    "ConflictError",
    "InvalidTransition",
    "PaymentError",
    "PaymentLedgerError",
    "PaymentNotConfirmed",
    "PlanNotFoundError",
    "ResellerNotApprovedError",
    "ResellerNotFoundError",
    "SubscriptionError",
    "TenantNotFoundError",
]
