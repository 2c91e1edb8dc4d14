"""
Billing system exceptions.

Custom exceptions for subscription lifecycle operations with clear error messages.
Every error carries a status code, context, and a recovery hint so callers get a
typed failure instead of a crashed request.
"""

from typing import Any

from uniflow.platform.domain import UniflowError


class BillingError(UniflowError):
    """Base billing system error."""

    default_code = "BILLING_ERROR"


class TenantNotFoundError(BillingError):
    """Tenant not found error."""

    def __init__(self, message: str, tenant_id: str | None = None) -> None:
        super().__init__(
            message,
            "TENANT_NOT_FOUND",
            status_code=404,
            context={"tenant_id": tenant_id} if tenant_id else {},
            recovery_hint="Verify the tenant ID and ensure the tenant exists",
        )


class SubscriptionError(BillingError):
    """Subscription-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "SUBSCRIPTION_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class InvalidTransition(SubscriptionError):
    """The requested event is not allowed from the subscription's current state."""

    def __init__(self, message: str, current_state: str, event: str) -> None:
        super().__init__(
            message,
            context={"current_state": current_state, "event": event},
            recovery_hint=(
                f"'{event}' is not allowed while the subscription is {current_state}. "
                "Reload the subscription and check its status first."
            ),
        )
        self.error_code = "INVALID_TRANSITION"
        self.status_code = 409
        self.current_state = current_state
        self.event = event


class ConflictError(SubscriptionError):
    """A concurrent write changed the subscription first; safe to retry."""

    retryable = True

    def __init__(
        self, message: str, tenant_id: str, expected_version: int | None = None
    ) -> None:
        context: dict[str, Any] = {"tenant_id": tenant_id}
        if expected_version is not None:
            context["expected_version"] = expected_version

        super().__init__(
            message,
            context=context,
            recovery_hint="Reload the subscription and retry the operation",
        )
        self.error_code = "SUBSCRIPTION_CONFLICT"
        self.status_code = 409


class PlanNotFoundError(SubscriptionError):
    """Subscription plan not found error."""

    def __init__(self, message: str, plan_id: str | None = None) -> None:
        context = {}
        if plan_id:
            context["plan_id"] = plan_id

        super().__init__(
            message,
            context=context,
            recovery_hint="Verify the plan ID and ensure it exists and is active",
        )
        self.error_code = "PLAN_NOT_FOUND"
        self.status_code = 404


class PaymentError(BillingError):
    """Payment processing errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message, "PAYMENT_ERROR", status_code=402, context=context, recovery_hint=recovery_hint
        )


class PaymentNotConfirmed(PaymentError):
    """Upgrade or renewal attempted without a successful payment outcome."""

    def __init__(
        self, message: str, payment_status: str, expected_amount: Any | None = None
    ) -> None:
        context: dict[str, Any] = {"payment_status": payment_status}
        if expected_amount is not None:
            context["expected_amount"] = str(expected_amount)

        super().__init__(
            message,
            context=context,
            recovery_hint=(
                "Complete the payment with the gateway, then retry with the confirmed outcome"
            ),
        )
        self.error_code = "PAYMENT_NOT_CONFIRMED"


class PaymentLedgerError(PaymentError):
    """Attempt to rewrite a completed ledger entry."""

    def __init__(self, message: str, invoice_number: str | None = None) -> None:
        super().__init__(
            message,
            context={"invoice_number": invoice_number} if invoice_number else {},
            recovery_hint="Record a correction entry instead of editing a completed payment",
        )
        self.error_code = "PAYMENT_LEDGER_IMMUTABLE"
        self.status_code = 409


class ResellerNotFoundError(BillingError):
    """Reseller not found error."""

    def __init__(self, message: str, reseller_id: str | None = None) -> None:
        super().__init__(
            message,
            "RESELLER_NOT_FOUND",
            status_code=404,
            context={"reseller_id": reseller_id} if reseller_id else {},
            recovery_hint="Verify the reseller ID and ensure the reseller exists",
        )


class ResellerNotApprovedError(BillingError):
    """Tenants can only be attributed to approved resellers."""

    def __init__(self, message: str, reseller_id: str, status: str) -> None:
        super().__init__(
            message,
            "RESELLER_NOT_APPROVED",
            status_code=400,
            context={"reseller_id": reseller_id, "status": status},
            recovery_hint="Approve the reseller before attributing tenants to it",
        )
