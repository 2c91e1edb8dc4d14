"""Usage snapshot models."""

from datetime import datetime

from uniflow.platform.billing.catalog.models import MeteredResource
from uniflow.platform.domain import SnapshotModel, UniflowError


class UsageUnavailable(UniflowError):
    """Live usage for a resource could not be counted."""

    default_code = "USAGE_UNAVAILABLE"

    def __init__(self, tenant_id: str, resource: MeteredResource) -> None:
        super().__init__(
            f"Usage of {resource.value} for tenant {tenant_id} is currently unknown",
            status_code=503,
            context={"tenant_id": tenant_id, "resource": resource.value},
            recovery_hint="Retry once the owning service is reachable again",
        )
        self.resource = resource


class UsageSnapshot(SnapshotModel):
    """
    Live resource counts for one tenant.

    ``None`` means the count could not be obtained. It is never replaced by
    zero, so an unreachable store cannot unlock an over-limit tenant.
    """

    tenant_id: str
    measured_at: datetime
    users: int | None = None
    leads: int | None = None
    contacts: int | None = None
    deals: int | None = None
    storage_mb: int | None = None

    def get(self, resource: MeteredResource) -> int | None:
        return getattr(self, resource.value)

    def require(self, resource: MeteredResource) -> int:
        value = self.get(resource)
        if value is None:
            raise UsageUnavailable(self.tenant_id, resource)
        return value

    @property
    def unknown(self) -> list[MeteredResource]:
        return [resource for resource in MeteredResource if self.get(resource) is None]
