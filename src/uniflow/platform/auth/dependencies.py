"""
FastAPI dependencies for the calling principal.

Authentication happens upstream (session or token middleware). It leaves the
resolved ``Principal`` on ``request.state.principal``; these dependencies only
read it and check that the caller may touch the addressed tenant.
"""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status

from uniflow.platform.auth.rbac import Principal, UserType

logger = structlog.get_logger(__name__)


async def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return principal


async def require_operator(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """Platform operators only (SaaS owner / admin)."""
    if not principal.is_platform_operator:
        logger.warning(
            "Operator endpoint refused", user_id=principal.user_id, user_type=principal.user_type
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform operator access required",
        )
    return principal


def ensure_tenant_access(principal: Principal, tenant_id: str, *, admin: bool = False) -> None:
    """Operators reach every tenant; everyone else only their own (admins for writes)."""
    if principal.is_platform_operator:
        return
    if principal.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access to this tenant is not allowed",
        )
    if admin and principal.user_type != UserType.TENANT_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant administrator access required",
        )
