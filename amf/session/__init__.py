"""Persistent project/feature/session store."""

from amf.session.models import Feature, FeatureMode, FeatureSession, FeatureStatus, Project, SessionKind
from amf.session.project_store import (
    ParseError,
    ProjectStore,
    StoreError,
    StoreWriteError,
    UnknownVersionError,
)

__all__ = [
    "Feature",
    "FeatureMode",
    "FeatureSession",
    "FeatureStatus",
    "ParseError",
    "Project",
    "ProjectStore",
    "SessionKind",
    "StoreError",
    "StoreWriteError",
    "UnknownVersionError",
]
