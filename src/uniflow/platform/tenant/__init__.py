"""Tenant (organization) records."""

from uniflow.platform.tenant.models import Tenant, TenantCreate, TenantTable

__all__ = ["Tenant", "TenantCreate", "TenantTable"]
