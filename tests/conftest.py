from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from amf.runtime.tmux import TmuxError
from amf.runtime.worktree import NotAGitRepoError, WorktreeError
from amf.session.models import Feature, FeatureStatus, Project, SessionKind
from amf.session.project_store import ProjectStore
from amf.tui.controller import AppContext, Controller


class FakeTmux:
    """In-memory tmux server recording every call."""

    def __init__(self, prefix: str = "amf-", *, inside: bool = False) -> None:
        self.prefix = prefix
        self.inside = inside
        self.sessions: dict[str, list[str]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_create = False
        self.fail_kill = False
        self.capture = b""
        self.cursor: tuple[int, int] | None = None

    def session_exists(self, session: str) -> bool:
        return session in self.sessions

    def create_session(self, session: str, workdir: str, windows=("agent-1", "terminal-1")) -> None:
        names = list(windows)
        self.calls.append(("create_session", session, str(workdir), tuple(names)))
        if self.fail_create:
            raise TmuxError("tmux new-session failed")
        if session in self.sessions:
            raise TmuxError(f"tmux session '{session}' already exists")
        self.sessions[session] = names

    def create_window(self, session: str, window: str, workdir: str) -> None:
        self.calls.append(("create_window", session, window))
        self.sessions[session].append(window)

    def select_window(self, session: str, window: str) -> None:
        self.calls.append(("select_window", session, window))

    def kill_window(self, session: str, window: str) -> None:
        self.calls.append(("kill_window", session, window))
        self.sessions[session].remove(window)

    def list_windows(self, session: str) -> list[str]:
        return list(self.sessions.get(session, []))

    def launch(self, session: str, window: str, resume_token=None, args=()) -> None:
        self.calls.append(("launch", session, window, resume_token, tuple(args)))

    def kill(self, session: str) -> None:
        self.calls.append(("kill", session))
        if self.fail_kill:
            raise TmuxError("tmux kill-session failed")
        self.sessions.pop(session, None)

    def list_sessions(self) -> list[str]:
        return [s for s in self.sessions if s.startswith(self.prefix)]

    def attach(self, session: str) -> None:
        self.calls.append(("attach", session))

    def switch_client(self, session: str) -> None:
        self.calls.append(("switch_client", session))

    def capture_pane(self, session: str, window: str) -> bytes:
        self.calls.append(("capture_pane", session, window))
        return self.capture

    def cursor_position(self, session: str, window: str) -> tuple[int, int] | None:
        return self.cursor

    def resize_window(self, session: str, window: str, cols: int, rows: int) -> None:
        self.calls.append(("resize_window", session, window, cols, rows))

    def send_literal(self, session: str, window: str, text: str) -> None:
        self.calls.append(("send_literal", session, window, text))

    def send_key_name(self, session: str, window: str, key_name: str) -> None:
        self.calls.append(("send_key_name", session, window, key_name))

    def is_inside_tmux(self) -> bool:
        return self.inside

    def verbs(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeWorktrees:
    """Worktree manager that treats ``git_roots`` as repositories."""

    def __init__(self, git_roots: set[Path] | None = None, branch: str | None = "main") -> None:
        self.git_roots = {Path(p) for p in (git_roots or set())}
        self.branch = branch
        self.calls: list[tuple[Any, ...]] = []
        self.fail_create = False
        self.fail_remove = False

    def repo_root(self, path) -> Path:
        path = Path(path)
        for root in self.git_roots:
            if path == root or root in path.parents:
                return root
        raise NotAGitRepoError(f"{path} is not inside a git repository")

    def current_branch(self, path) -> str | None:
        return self.branch

    def create(self, repo, name: str, branch: str) -> Path:
        self.calls.append(("create", Path(repo), name, branch))
        if self.fail_create:
            raise WorktreeError("git worktree add failed: boom")
        return Path(repo) / ".worktrees" / name.replace("/", "-")

    def remove(self, repo, path) -> None:
        self.calls.append(("remove", Path(repo), Path(path)))
        if self.fail_remove:
            raise WorktreeError(f"git worktree remove failed for {path}")


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def make_controller(tmp_path: Path) -> Callable[..., Controller]:
    def factory(
        store: ProjectStore | None = None,
        *,
        tmux: FakeTmux | None = None,
        worktrees: FakeWorktrees | None = None,
        store_path: Path | None = None,
        cwd: Path | None = None,
    ) -> Controller:
        ctx = AppContext(
            store=store or ProjectStore(),
            store_path=store_path or tmp_path / "amf" / "projects.json",
            tmux=tmux or FakeTmux(),  # type: ignore[arg-type]
            worktrees=worktrees or FakeWorktrees(),  # type: ignore[arg-type]
            cwd=cwd or tmp_path,
        )
        return Controller(ctx)

    return factory


def make_feature(name: str, workdir: str, *, status: FeatureStatus = FeatureStatus.STOPPED, is_worktree: bool = False) -> Feature:
    feature = Feature(
        name=name,
        branch=name,
        workdir=workdir,
        is_worktree=is_worktree,
        tmux_session=f"amf-{name}",
        status=status,
    )
    feature.add_session(SessionKind.AGENT)
    feature.add_session(SessionKind.TERMINAL)
    return feature


def make_store(repo: Path, *features: Feature, name: str = "app") -> ProjectStore:
    return ProjectStore(projects=[Project(name=name, repo=str(repo), features=list(features))])
