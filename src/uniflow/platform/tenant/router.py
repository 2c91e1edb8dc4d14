"""Tenant registration router."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from uniflow.platform.auth.dependencies import (
    ensure_tenant_access,
    get_current_principal,
    require_operator,
)
from uniflow.platform.auth.rbac import Principal
from uniflow.platform.billing.subscriptions.lifecycle import SubscriptionLifecycleManager
from uniflow.platform.billing.subscriptions.router import get_lifecycle_manager
from uniflow.platform.tenant.models import Tenant, TenantCreate

router = APIRouter(prefix="/tenants")


@router.post("", response_model=Tenant, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    data: TenantCreate,
    principal: Annotated[Principal, Depends(require_operator)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Tenant:
    """Register an organization. It starts on a trial of the configured plan."""
    return await manager.create_tenant(data, actor_id=principal.user_id)


@router.get("/{tenant_id}", response_model=Tenant)
async def get_tenant(
    tenant_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    manager: Annotated[SubscriptionLifecycleManager, Depends(get_lifecycle_manager)],
) -> Tenant:
    ensure_tenant_access(principal, tenant_id)
    return await manager.get_tenant(tenant_id)
