"""UI modes and selection types for the dashboard state machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class CreateStep(str, Enum):
    NAME = "name"
    PATH = "path"
    BRANCH = "branch"


PROJECT_STEPS = (CreateStep.NAME, CreateStep.PATH)
FEATURE_STEPS = (CreateStep.NAME, CreateStep.BRANCH)


@dataclass
class NormalMode:
    pass


@dataclass
class HelpMode:
    pass


@dataclass
class CreatingProjectMode:
    step: CreateStep = CreateStep.NAME
    name: str = ""
    path: str = ""

    steps = PROJECT_STEPS


@dataclass
class CreatingFeatureMode:
    project_name: str
    step: CreateStep = CreateStep.NAME
    name: str = ""
    branch: str = ""

    steps = FEATURE_STEPS


@dataclass
class DeletingProjectMode:
    project_name: str


@dataclass
class DeletingFeatureMode:
    project_name: str
    feature_name: str


@dataclass
class ViewState:
    """What the embedded pane is showing."""

    project_name: str
    feature_name: str
    session: str
    window: str
    label: str


@dataclass
class ViewingMode:
    view: ViewState


@dataclass
class SessionSwitcherMode:
    """Overlay listing the viewed feature's sessions; ``view`` is where Esc returns."""

    view: ViewState
    selected: int = 0


@dataclass
class RenamingSessionMode:
    project_name: str
    feature_name: str
    window: str
    input: str = ""
    # Switcher to reopen after the rename; None returns to the dashboard.
    return_to: SessionSwitcherMode | None = None


Mode = Union[
    NormalMode,
    HelpMode,
    CreatingProjectMode,
    CreatingFeatureMode,
    DeletingProjectMode,
    DeletingFeatureMode,
    ViewingMode,
    SessionSwitcherMode,
    RenamingSessionMode,
]

CreatingMode = Union[CreatingProjectMode, CreatingFeatureMode]


@dataclass(frozen=True)
class Selection:
    """Cursor position in the project tree: ``(project, feature?, session?)`` indices."""

    project: int = 0
    feature: int | None = None
    session: int | None = None

    @property
    def is_project(self) -> bool:
        return self.feature is None

    @property
    def is_feature(self) -> bool:
        return self.feature is not None and self.session is None

    @property
    def is_session(self) -> bool:
        return self.session is not None


# Visible rows of the tree share the selection shape.
VisibleItem = Selection
