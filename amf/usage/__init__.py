"""Agent usage telemetry."""

from amf.usage.models import DailyActivity, RateWindow, UsageSnapshot
from amf.usage.monitor import UsageMonitor

__all__ = ["DailyActivity", "RateWindow", "UsageMonitor", "UsageSnapshot"]
