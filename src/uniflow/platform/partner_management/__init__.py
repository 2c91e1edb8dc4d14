"""Resellers and their recurring commission on attributed tenants."""

from uniflow.platform.partner_management.commission import (
    CommissionLedger,
    summarize,
    tenant_commission,
)
from uniflow.platform.partner_management.models import (
    Reseller,
    ResellerCreate,
    ResellerStats,
    ResellerStatus,
    ResellerTable,
    TenantCommission,
)
from uniflow.platform.partner_management.service import ResellerService

__all__ = [
    "CommissionLedger",
    "Reseller",
    "ResellerCreate",
    "ResellerService",
    "ResellerStats",
    "ResellerStatus",
    "ResellerTable",
    "TenantCommission",
    "summarize",
    "tenant_commission",
]
