"""
Reseller router.

Reseller applications, approval, commission rate changes and commission
views. Every endpoint is an operator action.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from uniflow.platform.auth.dependencies import require_operator
from uniflow.platform.auth.rbac import Principal
from uniflow.platform.db import get_async_session
from uniflow.platform.domain import AppBaseModel
from uniflow.platform.partner_management.commission import CommissionLedger
from uniflow.platform.partner_management.models import (
    Reseller,
    ResellerCreate,
    ResellerStats,
    ResellerStatus,
)
from uniflow.platform.partner_management.service import ResellerService

router = APIRouter(prefix="/resellers")


class ResellerStatusUpdate(AppBaseModel):
    status: ResellerStatus


class CommissionRateUpdate(AppBaseModel):
    commission_rate: Decimal = Field(ge=0, le=100)


class ResellerListResponse(AppBaseModel):
    resellers: list[Reseller]
    total: int


def get_reseller_service(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> ResellerService:
    return ResellerService(db)


def get_commission_ledger(
    db: Annotated[AsyncSession, Depends(get_async_session)],
) -> CommissionLedger:
    return CommissionLedger(db)


@router.post("", response_model=Reseller, status_code=status.HTTP_201_CREATED)
async def register_reseller(
    data: ResellerCreate,
    _: Annotated[Principal, Depends(require_operator)],
    service: Annotated[ResellerService, Depends(get_reseller_service)],
) -> Reseller:
    return await service.register(data)


@router.get("", response_model=ResellerListResponse)
async def list_resellers(
    _: Annotated[Principal, Depends(require_operator)],
    service: Annotated[ResellerService, Depends(get_reseller_service)],
    reseller_status: ResellerStatus | None = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> ResellerListResponse:
    resellers, total = await service.list_resellers(reseller_status, offset=offset, limit=limit)
    return ResellerListResponse(resellers=resellers, total=total)


@router.get("/{reseller_id}", response_model=Reseller)
async def get_reseller(
    reseller_id: str,
    _: Annotated[Principal, Depends(require_operator)],
    service: Annotated[ResellerService, Depends(get_reseller_service)],
) -> Reseller:
    return await service.get(reseller_id)


@router.patch("/{reseller_id}/status", response_model=Reseller)
async def update_reseller_status(
    reseller_id: str,
    update: ResellerStatusUpdate,
    principal: Annotated[Principal, Depends(require_operator)],
    service: Annotated[ResellerService, Depends(get_reseller_service)],
) -> Reseller:
    return await service.update_status(reseller_id, update.status, actor_id=principal.user_id)


@router.patch("/{reseller_id}/commission-rate", response_model=Reseller)
async def update_commission_rate(
    reseller_id: str,
    update: CommissionRateUpdate,
    principal: Annotated[Principal, Depends(require_operator)],
    service: Annotated[ResellerService, Depends(get_reseller_service)],
) -> Reseller:
    """Default rate for tenants attributed from now on."""
    return await service.update_commission_rate(
        reseller_id, update.commission_rate, actor_id=principal.user_id
    )


@router.get("/{reseller_id}/stats", response_model=ResellerStats)
async def get_reseller_stats(
    reseller_id: str,
    _: Annotated[Principal, Depends(require_operator)],
    ledger: Annotated[CommissionLedger, Depends(get_commission_ledger)],
    as_of: datetime | None = Query(None, description="Evaluation time, defaults to now"),
) -> ResellerStats:
    """Monthly revenue and commission from the reseller's active tenants."""
    return await ledger.get_reseller_stats(reseller_id, as_of)
