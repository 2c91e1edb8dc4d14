"""Append-only subscription payment ledger."""

from uniflow.platform.billing.payments.ledger import PaymentLedger
from uniflow.platform.billing.payments.models import (
    Payment,
    PaymentOutcome,
    PaymentStatus,
    PaymentTable,
    PaymentType,
)

__all__ = [
    "Payment",
    "PaymentLedger",
    "PaymentOutcome",
    "PaymentStatus",
    "PaymentTable",
    "PaymentType",
]
