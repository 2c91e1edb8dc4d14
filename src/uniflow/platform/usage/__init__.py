"""Live usage metering."""

from uniflow.platform.usage.meter import SqlCountSource, UsageMeter, UsageSource, build_usage_meter
from uniflow.platform.usage.models import UsageSnapshot, UsageUnavailable

__all__ = [
    "SqlCountSource",
    "UsageMeter",
    "UsageSnapshot",
    "UsageSource",
    "UsageUnavailable",
    "build_usage_meter",
]
