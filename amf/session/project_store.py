"""Persistent project store: one versioned JSON document.

File layout::

    {
      "version": 2,
      "projects": [
        {"id": ..., "name": ..., "repo": ..., "features": [
            {"name": ..., "tmux_session": ..., "sessions": [...], ...}
        ]}
      ]
    }

The store is owned by a single writer (the UI thread). Every load migrates
to the latest schema first; a migrated document is written back before it is
returned, so an upgrade is never left half-applied on disk.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

from loguru import logger

from amf.session.migrations import LATEST_VERSION, run_migrations
from amf.session.models import Feature, FeatureStatus, Project


class StoreError(RuntimeError):
    """Base class for project store errors."""


class ParseError(StoreError):
    """Raised when the store document is malformed."""


class UnknownVersionError(StoreError):
    """Raised when the store was written by a newer schema than this build knows."""


class StoreWriteError(StoreError):
    """Raised when the store cannot be written to disk."""


@dataclass
class ProjectStore:
    """In-memory view of the store document."""

    projects: list[Project] = field(default_factory=list)
    version: int = LATEST_VERSION

    # ------------------------------------------------------------------ #
    # Load / save                                                          #
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: Path) -> "ProjectStore":
        """Load, migrate and return the store at ``path``.

        A missing file yields an empty store. Raises ``ParseError`` for
        malformed content and ``UnknownVersionError`` for a newer schema.
        """
        if not path.exists():
            return cls()

        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(f"Failed to parse {path}: {exc}") from exc
        if not isinstance(doc, dict):
            raise ParseError(f"Failed to parse {path}: top level must be an object")

        version = cls._read_version(doc, path)
        if version > LATEST_VERSION:
            raise UnknownVersionError(
                f"{path} has schema version {version}; this build supports up to {LATEST_VERSION}"
            )

        try:
            if version < LATEST_VERSION:
                doc = run_migrations(doc, version)
            store = cls.from_dict(doc)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ParseError(f"Failed to parse v{version} project store {path}: {exc!r}") from exc

        if version < LATEST_VERSION:
            store.save(path)
            logger.info(f"[store] Rewrote {path} as v{LATEST_VERSION}")
        return store

    @staticmethod
    def _read_version(doc: dict[str, Any], path: Path) -> int:
        if "version" not in doc:
            return 0
        version = doc["version"]
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise ParseError(f"Failed to parse {path}: invalid version {version!r}")
        return version

    def save(self, path: Path) -> None:
        """Write the whole document, replacing whatever is on disk."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(self.to_dict(), ensure_ascii=False, indent=2) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            raise StoreWriteError(f"Failed to write {path}: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": LATEST_VERSION,
            "projects": [p.to_dict() for p in self.projects],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectStore":
        projects = data["projects"]
        if not isinstance(projects, list):
            raise TypeError("'projects' must be a list")
        return cls(projects=[Project.from_dict(p) for p in projects], version=LATEST_VERSION)

    # ------------------------------------------------------------------ #
    # Lookup / mutation                                                    #
    # ------------------------------------------------------------------ #

    def find_project(self, name: str) -> Project | None:
        for project in self.projects:
            if project.name == name:
                return project
        return None

    def find_feature(self, project_name: str, feature_name: str) -> Feature | None:
        project = self.find_project(project_name)
        return project.find_feature(feature_name) if project else None

    def add_project(self, project: Project) -> None:
        self.projects.append(project)

    def remove_project(self, name: str) -> Project | None:
        for idx, project in enumerate(self.projects):
            if project.name == name:
                return self.projects.pop(idx)
        return None

    def add_feature(self, project_name: str, feature: Feature) -> bool:
        project = self.find_project(project_name)
        if project is None:
            return False
        project.features.append(feature)
        return True

    def remove_feature(self, project_name: str, feature_name: str) -> Feature | None:
        project = self.find_project(project_name)
        if project is None:
            return None
        for idx, feature in enumerate(project.features):
            if feature.name == feature_name:
                return project.features.pop(idx)
        return None

    def iter_features(self) -> Iterator[tuple[Project, Feature]]:
        for project in self.projects:
            for feature in project.features:
                yield project, feature

    def tracked_sessions(self) -> set[str]:
        return {feature.tmux_session for _, feature in self.iter_features()}

    # ------------------------------------------------------------------ #
    # Reconciliation                                                       #
    # ------------------------------------------------------------------ #

    def sync_statuses(self, live_sessions: Iterable[str]) -> int:
        """Reconcile feature status with the live tmux session set.

        Absent sessions become ``stopped``. Present sessions that were
        ``stopped`` become ``idle``; ``active`` is never assigned here.
        Returns the number of features whose status changed.
        """
        live = set(live_sessions)
        changed = 0
        for _, feature in self.iter_features():
            before = feature.status
            if feature.tmux_session in live:
                if feature.status is FeatureStatus.STOPPED:
                    feature.status = FeatureStatus.IDLE
            else:
                feature.status = FeatureStatus.STOPPED
            if feature.status is not before:
                changed += 1
        return changed
