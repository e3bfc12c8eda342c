"""Usage data models for agent rate limit monitoring."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RateWindow:
    """A single rate-limit window (5h or weekly)."""

    name: str                   # "5h" | "7d"
    used_percent: float = 0.0   # 0.0-100.0
    reset_info: str | None = None

    @property
    def remaining_percent(self) -> float:
        return max(0.0, 100.0 - self.used_percent)

    def format_status(self) -> str:
        # One decimal place only when there is a fractional part (e.g. 12.5%)
        pct = f"{self.used_percent:.1f}".rstrip("0").rstrip(".")
        base = f"{self.name} {pct}%"
        if self.reset_info:
            return f"{base} (resets {self.reset_info})"
        return base


@dataclass(frozen=True)
class DailyActivity:
    """Today's counters from the agent's local stats cache."""

    messages: int = 0
    sessions: int = 0
    tool_calls: int = 0


@dataclass(frozen=True)
class UsageSnapshot:
    """Immutable view of everything the monitor knows at one instant."""

    agent: str = "claude"
    windows: tuple[RateWindow, ...] = ()
    today: DailyActivity = field(default_factory=DailyActivity)
    subscription_type: str | None = None
    updated_at: float = field(default_factory=time.time)
    error: str | None = None

    @property
    def primary(self) -> RateWindow | None:
        """The most-constrained window (lowest remaining %)."""
        if not self.windows:
            return None
        return min(self.windows, key=lambda w: w.remaining_percent)

    @property
    def is_depleted(self) -> bool:
        p = self.primary
        return p is not None and p.remaining_percent < 2.0

    def format_status(self) -> str:
        """One-line summary for the status bar."""
        parts = [f"today {self.today.messages} msgs / {self.today.sessions} sessions / {self.today.tool_calls} tools"]
        parts += [w.format_status() for w in self.windows]
        if self.subscription_type:
            parts.append(self.subscription_type)
        if self.error:
            parts.append(f"usage error: {self.error}")
        return " · ".join(parts)
