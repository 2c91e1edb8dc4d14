"""
Uniflow Platform Services - subscription and entitlement engine.

This package owns the commercial side of the multi-tenant CRM:
- Plan catalog and per-tenant plan snapshots
- Subscription lifecycle (trial, active, expired, suspended, cancelled)
- Entitlement evaluation and the RBAC + plan permission gate
- Reseller attribution and commission reporting
"""

__version__ = "1.0.0"
__author__ = "Uniflow Team"


def get_version() -> str:
    """Get platform services version."""
    return __version__


__all__ = ["__version__", "get_version"]
