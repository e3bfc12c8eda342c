"""Typed store model: projects, features and their tmux sessions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from amf.utils.helpers import safe_name, utc_now_iso

DEFAULT_SESSION_PREFIX = "amf-"

# Window names used before sessions were stored per feature.
LEGACY_AGENT_WINDOW = "claude"
LEGACY_TERMINAL_WINDOW = "terminal"


def _new_id() -> str:
    return str(uuid.uuid4())


class FeatureStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    STOPPED = "stopped"


class FeatureMode(str, Enum):
    """Agent permission level for a feature."""

    VIBELESS = "vibeless"
    VIBE = "vibe"
    SUPERVIBE = "supervibe"

    def next(self) -> "FeatureMode":
        order = list(FeatureMode)
        return order[(order.index(self) + 1) % len(order)]


class SessionKind(str, Enum):
    AGENT = "agent"
    TERMINAL = "terminal"


def session_name_for(feature_name: str, prefix: str = DEFAULT_SESSION_PREFIX) -> str:
    """Return the tmux session name for a feature. Stable for a given name."""
    return f"{prefix}{safe_name(feature_name)}"


@dataclass
class FeatureSession:
    """One tmux window inside a feature's session."""

    kind: SessionKind
    label: str
    window: str
    resume_token: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "window": self.window,
            "resume_token": self.resume_token,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeatureSession":
        return cls(
            id=str(data["id"]),
            kind=SessionKind(data["kind"]),
            label=str(data["label"]),
            window=str(data["window"]),
            resume_token=data.get("resume_token"),
            created_at=str(data["created_at"]),
        )


@dataclass
class Feature:
    """A unit of work inside a project, running in its own tmux session."""

    name: str
    branch: str
    workdir: str
    is_worktree: bool
    tmux_session: str
    sessions: list[FeatureSession] = field(default_factory=list)
    collapsed: bool = False
    mode: FeatureMode = FeatureMode.VIBELESS
    status: FeatureStatus = FeatureStatus.STOPPED
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now_iso)
    last_accessed: str = field(default_factory=utc_now_iso)

    def touch(self) -> None:
        self.last_accessed = utc_now_iso()

    def find_session(self, window: str) -> FeatureSession | None:
        for session in self.sessions:
            if session.window == window:
                return session
        return None

    def first_agent_session(self) -> FeatureSession | None:
        for session in self.sessions:
            if session.kind is SessionKind.AGENT:
                return session
        return self.sessions[0] if self.sessions else None

    def add_session(self, kind: SessionKind) -> FeatureSession:
        """Append a session with the lowest free ``agent-N``/``terminal-N`` window."""
        base = "agent" if kind is SessionKind.AGENT else "terminal"
        taken = {s.window for s in self.sessions}
        n = 1
        while f"{base}-{n}" in taken:
            n += 1
        session = FeatureSession(
            kind=kind,
            label=f"{base.capitalize()} {n}",
            window=f"{base}-{n}",
        )
        self.sessions.append(session)
        return session

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "branch": self.branch,
            "workdir": self.workdir,
            "is_worktree": self.is_worktree,
            "tmux_session": self.tmux_session,
            "sessions": [s.to_dict() for s in self.sessions],
            "collapsed": self.collapsed,
            "mode": self.mode.value,
            "status": self.status.value,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Feature":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            branch=str(data["branch"]),
            workdir=str(data["workdir"]),
            is_worktree=bool(data["is_worktree"]),
            tmux_session=str(data["tmux_session"]),
            sessions=[FeatureSession.from_dict(s) for s in data["sessions"]],
            collapsed=bool(data.get("collapsed", False)),
            mode=FeatureMode(data.get("mode", FeatureMode.VIBELESS.value)),
            status=FeatureStatus(data["status"]),
            created_at=str(data["created_at"]),
            last_accessed=str(data["last_accessed"]),
        )


@dataclass
class Project:
    """A repository and the features being worked on in it."""

    name: str
    repo: str
    features: list[Feature] = field(default_factory=list)
    collapsed: bool = False
    is_git: bool = True
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now_iso)

    def find_feature(self, name: str) -> Feature | None:
        for feature in self.features:
            if feature.name == name:
                return feature
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "repo": self.repo,
            "collapsed": self.collapsed,
            "is_git": self.is_git,
            "features": [f.to_dict() for f in self.features],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            repo=str(data["repo"]),
            collapsed=bool(data.get("collapsed", False)),
            is_git=bool(data.get("is_git", True)),
            features=[Feature.from_dict(f) for f in data["features"]],
            created_at=str(data["created_at"]),
        )
