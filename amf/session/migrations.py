"""Schema migrations for the project store document.

Each step takes the raw JSON document of version N and returns version N+1.
Steps are irreversible; ``run_migrations`` applies them in order until the
document reaches ``LATEST_VERSION``.

Version history::

    0  {"projects": [flat record, ...]}   one record per tmux session, no version key
    1  projects grouped by repository, features nested, one resume id per feature
    2  per-feature session list (agent/terminal windows), feature mode, project is_git
"""

from __future__ import annotations

import uuid
from pathlib import PurePath
from typing import Any, Callable

from loguru import logger

from amf.session.models import LEGACY_AGENT_WINDOW, LEGACY_TERMINAL_WINDOW
from amf.utils.helpers import parse_iso

LATEST_VERSION = 2

Document = dict[str, Any]


def _project_base_name(repo: str) -> str:
    name = PurePath(repo.rstrip("/\\") or repo).name
    return name or "unnamed"


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    n = 2
    while f"{name}-{n}" in taken:
        n += 1
    return f"{name}-{n}"


def _earliest(timestamps: list[str]) -> str:
    """Return the earliest timestamp, comparing parsed values when possible."""
    parsed = [(parse_iso(ts), ts) for ts in timestamps]
    if all(p is not None for p, _ in parsed):
        return min(parsed, key=lambda pair: pair[0])[1]  # type: ignore[arg-type,return-value]
    return min(timestamps)


def migrate_v0_to_v1(doc: Document) -> Document:
    """Group legacy flat records into projects keyed by repository root."""
    records = doc["projects"]
    if not isinstance(records, list):
        raise TypeError("legacy 'projects' must be a list")

    groups: dict[str, list[dict[str, Any]]] = {}
    for record in records:
        groups.setdefault(str(record["repo"]), []).append(record)

    taken: set[str] = set()
    projects: list[dict[str, Any]] = []
    for repo, group in groups.items():
        name = _unique_name(_project_base_name(repo), taken)
        taken.add(name)
        features = []
        for record in group:
            features.append(
                {
                    "id": str(uuid.uuid4()),
                    "name": str(record["name"]),
                    "branch": record.get("branch") or "main",
                    "workdir": str(record["workdir"]),
                    "is_worktree": bool(record["is_worktree"]),
                    "tmux_session": str(record["tmux_session"]),
                    "claude_session_id": record.get("claude_session_id"),
                    "status": record["status"],
                    "created_at": record["created_at"],
                    "last_accessed": record["last_accessed"],
                }
            )
        projects.append(
            {
                "id": str(uuid.uuid4()),
                "name": name,
                "repo": repo,
                "collapsed": False,
                "features": features,
                "created_at": _earliest([str(r["created_at"]) for r in group]),
            }
        )

    return {"version": 1, "projects": projects}


def migrate_v1_to_v2(doc: Document) -> Document:
    """Give every feature explicit agent + terminal sessions on the legacy windows."""
    projects = []
    for project in doc["projects"]:
        features = []
        for feature in project["features"]:
            upgraded = {k: v for k, v in feature.items() if k != "claude_session_id"}
            created_at = feature["created_at"]
            upgraded["sessions"] = [
                {
                    "id": str(uuid.uuid4()),
                    "kind": "agent",
                    "label": "Claude 1",
                    "window": LEGACY_AGENT_WINDOW,
                    "resume_token": feature.get("claude_session_id"),
                    "created_at": created_at,
                },
                {
                    "id": str(uuid.uuid4()),
                    "kind": "terminal",
                    "label": "Terminal 1",
                    "window": LEGACY_TERMINAL_WINDOW,
                    "resume_token": None,
                    "created_at": created_at,
                },
            ]
            upgraded.setdefault("collapsed", False)
            upgraded.setdefault("mode", "vibeless")
            features.append(upgraded)
        upgraded_project = dict(project)
        upgraded_project["features"] = features
        upgraded_project.setdefault("is_git", True)
        projects.append(upgraded_project)

    return {"version": 2, "projects": projects}


MIGRATIONS: dict[int, Callable[[Document], Document]] = {
    0: migrate_v0_to_v1,
    1: migrate_v1_to_v2,
}


def run_migrations(doc: Document, version: int) -> Document:
    """Upgrade ``doc`` from ``version`` to ``LATEST_VERSION``."""
    while version < LATEST_VERSION:
        step = MIGRATIONS[version]
        doc = step(doc)
        logger.info(f"[store] Migrated project store v{version} -> v{version + 1}")
        version += 1
    return doc
