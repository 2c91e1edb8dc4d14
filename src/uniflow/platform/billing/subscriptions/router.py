"""
Subscription lifecycle router.

Operators manage every tenant's subscription; tenant administrators can view,
upgrade and cancel their own. Engine errors propagate as typed exceptions and
are rendered by the application's error handler.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.auth.dependencies import (
    ensure_tenant_access,
    get_current_principal,
    require_operator,
)
from uniflow.platform.auth.rbac import Principal
from uniflow.platform.billing.catalog.models import Plan
from uniflow.platform.billing.catalog.service import PlanCatalog
from uniflow.platform.billing.payments.ledger import PaymentLedger
from uniflow.platform.billing.payments.models import Payment
from uniflow.platform.billing.subscriptions.lifecycle import SubscriptionLifecycleManager
from uniflow.platform.billing.subscriptions.models import (
    CancelRequest,
    RecordPaymentRequest,
    Subscription,
    SubscriptionFilters,
    SubscriptionPage,
    SubscriptionStatus,
    SuspendRequest,
    UpgradeRequest,
)
from uniflow.platform.db import get_async_session
from uniflow.platform.entitlements.models import Entitlement
from uniflow.platform.entitlements.service import EntitlementService
from uniflow.platform.usage.meter import UsageMeter

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/subscriptions")


def get_lifecycle_manager(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> SubscriptionLifecycleManager:
    """Dependency to get SubscriptionLifecycleManager instance."""
    return SubscriptionLifecycleManager(db)


def get_plan_catalog(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> PlanCatalog:
    return PlanCatalog(db)


def get_payment_ledger(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> PaymentLedger:
    return PaymentLedger(db)


def get_usage_meter(request: Request) -> UsageMeter:
    meter = getattr(request.app.state, "usage_meter", None)
    return meter if meter is not None else UsageMeter()


def get_entitlement_service(
    db: Annotated[AsyncSession, Depends(get_async_session)],
    meter: Annotated[UsageMeter, Depends(get_usage_meter)],
) -> EntitlementService:
    return EntitlementService(db, meter)


# ==================== Catalog ====================


@router.get("/plans", response_model=list[Plan])
async def list_plans(
    _: Annotated[Principal, Depends(get_current_principal)],
    catalog: Annotated[PlanCatalog, Depends(get_plan_catalog)],
) -> list[Plan]:
    """Plans currently offered for purchase."""
    return await catalog.list_plans()


# ==================== Reads ====================


@router.get("", response_model=SubscriptionPage)
async def list_subscriptions(
    _: Annotated[Principal, Depends(require_operator)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
    status: SubscriptionStatus | None = Query(None, description="Effective status"),
    plan_name: str | None = Query(None),
    reseller_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> SubscriptionPage:
    """List tenant subscriptions (operators only)."""
    filters = SubscriptionFilters(
        status=status,
        plan_name=plan_name,
        reseller_id=reseller_id,
        page=page,
        page_size=page_size,
    )
    return await manager.list_subscriptions(filters)


@router.get("/{tenant_id}", response_model=Subscription)
async def get_subscription(
    tenant_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Subscription:
    ensure_tenant_access(principal, tenant_id)
    return await manager.get_current_subscription(tenant_id)


@router.get("/{tenant_id}/entitlements", response_model=Entitlement)
async def get_entitlements(
    tenant_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[EntitlementService, Depends(get_entitlement_service)],
) -> Entitlement:
    """Effective status, countdowns, limit and feature flags as of now."""
    ensure_tenant_access(principal, tenant_id)
    return await service.get_entitlement(tenant_id)


@router.get("/{tenant_id}/payments", response_model=list[Payment])
async def list_payments(
    tenant_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    ledger: Annotated[PaymentLedger, Depends(get_payment_ledger)],
    limit: int = Query(10, ge=1, le=100),
) -> list[Payment]:
    ensure_tenant_access(principal, tenant_id, admin=True)
    return await ledger.list_payments(tenant_id, limit=limit)


# ==================== Transitions ====================


@router.post("/{tenant_id}/upgrade", response_model=Subscription)
async def upgrade_subscription(
    tenant_id: str,
    request: UpgradeRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Subscription:
    """Move a trial or expired tenant onto a paid plan with a confirmed payment."""
    ensure_tenant_access(principal, tenant_id, admin=True)
    return await manager.upgrade(
        tenant_id,
        request.plan_id,
        request.billing_cycle,
        request.payment,
        expected_version=request.expected_version,
        actor_id=principal.user_id,
    )


@router.post("/{tenant_id}/suspend", response_model=Subscription)
async def suspend_subscription(
    tenant_id: str,
    request: SuspendRequest,
    principal: Annotated[Principal, Depends(require_operator)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Subscription:
    return await manager.suspend(
        tenant_id,
        request.reason,
        expected_version=request.expected_version,
        actor_id=principal.user_id,
    )


@router.post("/{tenant_id}/activate", response_model=Subscription)
async def activate_subscription(
    tenant_id: str,
    principal: Annotated[Principal, Depends(require_operator)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
    expected_version: int | None = Query(None),
) -> Subscription:
    return await manager.activate(
        tenant_id, expected_version=expected_version, actor_id=principal.user_id
    )


@router.post("/{tenant_id}/cancel", response_model=Subscription)
async def cancel_subscription(
    tenant_id: str,
    request: CancelRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Subscription:
    """Stop renewal; access continues until the current window ends."""
    ensure_tenant_access(principal, tenant_id, admin=True)
    return await manager.cancel(
        tenant_id,
        request.reason,
        expected_version=request.expected_version,
        actor_id=principal.user_id,
    )


@router.post("/{tenant_id}/payments", response_model=Subscription)
async def record_payment(
    tenant_id: str,
    request: RecordPaymentRequest,
    principal: Annotated[Principal, Depends(require_operator)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Subscription:
    """Apply a renewal payment outcome reported by the gateway integration."""
    return await manager.record_payment(
        tenant_id,
        request.payment,
        expected_version=request.expected_version,
        actor_id=principal.user_id,
    )
