"""
Table registry.

Importing this module registers every table on ``Base.metadata`` so
``create_all`` and foreign keys across packages resolve.
"""

from uniflow.platform.billing.catalog.models import PlanTable
from uniflow.platform.billing.payments.models import PaymentTable
from uniflow.platform.billing.subscriptions.models import SubscriptionTable
from uniflow.platform.partner_management.models import ResellerTable
from uniflow.platform.tenant.models import TenantTable

__all__ = ["PaymentTable", "PlanTable", "ResellerTable", "SubscriptionTable", "TenantTable"]
