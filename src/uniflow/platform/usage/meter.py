"""
Usage meter.

Counts live resource usage per tenant by asking the stores that own the
records (user directory, lead/contact/deal stores, storage accounting). Each
resource has its own async source; a source that fails or times out yields an
unknown count for that resource instead of zero.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from uniflow.platform.billing.catalog.models import MeteredResource
from uniflow.platform.settings import Settings, get_settings
from uniflow.platform.usage.models import UsageSnapshot

logger = structlog.get_logger(__name__)

UsageSource = Callable[[str], Awaitable[int]]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqlCountSource:
    """Counts rows of a collaborator table that belong to a tenant."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        table: str,
        tenant_column: str = "tenant_id",
    ) -> None:
        for name in (table, tenant_column):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid SQL identifier: {name!r}")
        self._session_maker = session_maker
        self._statement = text(f"SELECT COUNT(*) FROM {table} WHERE {tenant_column} = :tenant_id")

    async def __call__(self, tenant_id: str) -> int:
        async with self._session_maker() as session:
            result = await session.execute(self._statement, {"tenant_id": tenant_id})
            return int(result.scalar_one())


class UsageMeter:
    """Aggregates per-resource usage sources into one snapshot."""

    def __init__(
        self,
        sources: Mapping[MeteredResource, UsageSource] | None = None,
        *,
        timeout: float = 2.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.sources: dict[MeteredResource, UsageSource] = dict(sources or {})
        self.timeout = timeout
        self._clock = clock or (lambda: datetime.now(UTC))

    def register(self, resource: MeteredResource, source: UsageSource) -> None:
        self.sources[resource] = source

    async def _count(self, tenant_id: str, resource: MeteredResource) -> int | None:
        source = self.sources.get(resource)
        if source is None:
            return None
        try:
            value = await asyncio.wait_for(source(tenant_id), timeout=self.timeout)
        except TimeoutError:
            logger.warning(
                "Usage source timed out",
                tenant_id=tenant_id,
                resource=resource.value,
                timeout=self.timeout,
            )
            return None
        except Exception as e:
            logger.warning(
                "Usage source failed",
                tenant_id=tenant_id,
                resource=resource.value,
                error=str(e),
            )
            return None
        if value < 0:
            logger.warning(
                "Usage source returned a negative count",
                tenant_id=tenant_id,
                resource=resource.value,
                value=value,
            )
            return None
        return int(value)

    async def get_usage(self, tenant_id: str) -> UsageSnapshot:
        resources = list(MeteredResource)
        counts = await asyncio.gather(
            *(self._count(tenant_id, resource) for resource in resources)
        )
        snapshot = UsageSnapshot(
            tenant_id=tenant_id,
            measured_at=self._clock(),
            **{resource.value: count for resource, count in zip(resources, counts, strict=True)},
        )
        if snapshot.unknown:
            logger.debug(
                "Usage partially unknown",
                tenant_id=tenant_id,
                unknown=[resource.value for resource in snapshot.unknown],
            )
        return snapshot


def build_usage_meter(
    session_maker: async_sessionmaker[AsyncSession], settings: Settings | None = None
) -> UsageMeter:
    """Meter wired to the collaborator tables listed in ``settings.usage.tables``."""
    settings = settings or get_settings()
    meter = UsageMeter(timeout=settings.usage.source_timeout_seconds)
    for resource_name, table in settings.usage.tables.items():
        try:
            resource = MeteredResource(resource_name)
        except ValueError:
            logger.warning("Ignoring unknown metered resource in settings", resource=resource_name)
            continue
        meter.register(
            resource, SqlCountSource(session_maker, table, settings.usage.tenant_column)
        )
    return meter
