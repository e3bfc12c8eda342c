"""Claude usage sources: local stats cache and the OAuth usage endpoint.

Sources
-------
``~/.claude/stats-cache.json``
    ``{"dailyActivity": [{"date": "2025-01-31", "messageCount": 12,
    "sessionCount": 2, "toolCallCount": 40}, ...]}``
``~/.claude/.credentials.json``
    ``{"claudeAiOauth": {"accessToken": "...", "subscriptionType": "pro"}}``
``GET /api/oauth/usage``
    ``{"five_hour": {"utilization": 12.0, "resets_at": "..."},
    "seven_day": {"utilization": 40.5, "resets_at": "..."}}``

Nothing here retries; callers decide when to ask again.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Callable

from amf.usage.models import DailyActivity, RateWindow
from amf.utils.helpers import parse_iso

USAGE_ENDPOINT = "https://api.anthropic.com/api/oauth/usage"
_HEADERS = {
    "anthropic-beta": "oauth-2025-04-20",
    "User-Agent": "claude-code/2.1.42",
    "Content-Type": "application/json",
}
_WINDOWS = (("five_hour", "5h"), ("seven_day", "7d"))


class UsageProbeError(RuntimeError):
    """Raised when a usage source cannot be read or parsed."""


@dataclass(frozen=True)
class OAuthCredentials:
    access_token: str
    subscription_type: str | None = None


def read_daily_activity(claude_home: Path, today: date | None = None) -> DailyActivity:
    """Today's counters; zeros when the cache has no entry for today."""
    path = claude_home / "stats-cache.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        entries = data["dailyActivity"]
    except FileNotFoundError:
        return DailyActivity()
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise UsageProbeError(f"stats cache unreadable: {exc}") from exc
    if not isinstance(entries, list):
        raise UsageProbeError("stats cache 'dailyActivity' is not a list")

    key = (today or date.today()).isoformat()
    for entry in entries:
        if isinstance(entry, dict) and entry.get("date") == key:
            try:
                return DailyActivity(
                    messages=int(entry.get("messageCount", 0)),
                    sessions=int(entry.get("sessionCount", 0)),
                    tool_calls=int(entry.get("toolCallCount", 0)),
                )
            except (TypeError, ValueError) as exc:
                raise UsageProbeError(f"stats cache entry for {key} malformed: {exc}") from exc
    return DailyActivity()


def read_credentials(claude_home: Path) -> OAuthCredentials | None:
    """OAuth token from the credentials file, or None when not logged in."""
    path = claude_home / ".credentials.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        raise UsageProbeError(f"credentials unreadable: {exc}") from exc
    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    if not isinstance(oauth, dict) or not oauth.get("accessToken"):
        return None
    return OAuthCredentials(
        access_token=str(oauth["accessToken"]),
        subscription_type=oauth.get("subscriptionType"),
    )


def _format_reset(value: Any) -> str | None:
    if not value:
        return None
    parsed = parse_iso(str(value))
    if parsed is None:
        return str(value)
    return parsed.astimezone().strftime("%b %d %H:%M")


def parse_usage_response(payload: Any) -> list[RateWindow]:
    if not isinstance(payload, dict):
        raise UsageProbeError("usage response is not an object")
    windows: list[RateWindow] = []
    for key, name in _WINDOWS:
        raw = payload.get(key)
        if not isinstance(raw, dict) or raw.get("utilization") is None:
            continue
        try:
            used = float(raw["utilization"])
        except (TypeError, ValueError) as exc:
            raise UsageProbeError(f"bad utilization for {key}: {exc}") from exc
        windows.append(RateWindow(name=name, used_percent=used, reset_info=_format_reset(raw.get("resets_at"))))
    return windows


def fetch_rate_windows(
    token: str,
    *,
    endpoint: str = USAGE_ENDPOINT,
    timeout_s: float = 10.0,
    opener: Callable[..., Any] | None = None,
) -> list[RateWindow]:
    """Query the OAuth usage endpoint once."""
    request = urllib.request.Request(
        endpoint,
        headers={"Authorization": f"Bearer {token}", **_HEADERS},
        method="GET",
    )
    open_url = opener or urllib.request.urlopen
    try:
        with open_url(request, timeout=timeout_s) as resp:
            body = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        raise UsageProbeError(f"HTTP {exc.code}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise UsageProbeError(f"HTTP error: {exc}") from exc
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise UsageProbeError(f"Parse error: {exc}") from exc
    return parse_usage_response(payload)
