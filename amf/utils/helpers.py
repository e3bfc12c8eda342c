"""Path and logging helpers."""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

APP_DIRNAME = "amf"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Return the per-user config/data directory (``$XDG_CONFIG_HOME/amf``)."""
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".config"
    return root / APP_DIRNAME


_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_-]+")


def safe_name(value: str) -> str:
    """Reduce a user-supplied name to characters tmux and the filesystem accept."""
    cleaned = _UNSAFE_NAME_RE.sub("-", value.strip()).strip("-")
    return cleaned or "unnamed"


def setup_logging(log_path: Path, level: str = "INFO") -> None:
    """Route loguru to a rotating file so nothing is written over the TUI."""
    ensure_dir(log_path.parent)
    logger.remove()
    logger.add(
        str(log_path),
        level=level.upper(),
        rotation="1 MB",
        retention=3,
        enqueue=False,
        backtrace=False,
    )
