"""Shared TUI theme defaults."""

from __future__ import annotations

from amf.session.models import FeatureMode, FeatureStatus

COLOR_BG_APP = "#0E1116"
COLOR_BG_PANEL = "#131A22"
COLOR_BORDER = "#223247"
COLOR_TEXT = "#D9E2EF"
COLOR_TEXT_MUTED = "#93A3B8"
COLOR_ACCENT = "#2E9BFF"
COLOR_STATUS_BG = "#0B1119"
COLOR_SUCCESS = "#39C172"
COLOR_WARNING = "#E0B341"
COLOR_DANGER = "#EA5F5F"

STATUS_GLYPHS: dict[FeatureStatus, tuple[str, str]] = {
    FeatureStatus.ACTIVE: ("●", COLOR_SUCCESS),
    FeatureStatus.IDLE: ("○", COLOR_WARNING),
    FeatureStatus.STOPPED: ("■", COLOR_TEXT_MUTED),
}

MODE_BADGES: dict[FeatureMode, tuple[str, str]] = {
    FeatureMode.VIBELESS: ("", COLOR_TEXT_MUTED),
    FeatureMode.VIBE: ("vibe", COLOR_ACCENT),
    FeatureMode.SUPERVIBE: ("supervibe", COLOR_DANGER),
}

HELP_LINES = (
    ("Dashboard", ""),
    ("j / k, arrows", "move selection"),
    ("h / l", "parent / expand"),
    ("Enter", "expand or collapse; view a session"),
    ("e", "view the selected feature or session"),
    ("N / n", "new project / new feature"),
    ("c / x", "start / stop feature (x on a session removes it)"),
    ("a / t", "add agent / terminal session"),
    ("T", "switch to the feature's terminal"),
    ("s", "switch tmux client to the selection"),
    ("R", "rename the selected session"),
    ("m", "cycle agent permission mode"),
    ("d", "delete project or feature"),
    ("r", "refresh statuses from tmux"),
    ("q", "quit"),
    ("Embedded view", ""),
    ("Ctrl+Q", "back to dashboard"),
    ("Ctrl+Space then t / T", "next / previous session"),
    ("Ctrl+Space then w", "session list (Enter view, r rename)"),
    ("Ctrl+Space then n / p", "next / previous feature"),
    ("Ctrl+Space then s", "switch tmux client here"),
    ("Ctrl+Space then x", "stop this feature"),
    ("Ctrl+Space then r", "refresh statuses"),
)
