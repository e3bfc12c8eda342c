"""Dashboard controller: the state machine between user input, tmux, git and the store.

Every operation leaves the controller in a well-defined mode with an optional
one-line ``message`` for the status bar. Validation problems keep the editing
mode; failures of external tools return to Normal. The store is persisted
after every mutation and a failed write is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from amf.config.schema import Config
from amf.runtime.agent import mode_args
from amf.runtime.tmux import TmuxError, TmuxManager
from amf.runtime.worktree import NotAGitRepoError, WorktreeError, WorktreeManager
from amf.session.models import (
    Feature,
    FeatureSession,
    FeatureStatus,
    Project,
    SessionKind,
    session_name_for,
)
from amf.session.project_store import ProjectStore, StoreWriteError
from amf.tui.modes import (
    CreateStep,
    CreatingFeatureMode,
    CreatingProjectMode,
    DeletingFeatureMode,
    DeletingProjectMode,
    HelpMode,
    Mode,
    NormalMode,
    RenamingSessionMode,
    Selection,
    SessionSwitcherMode,
    ViewingMode,
    ViewState,
    VisibleItem,
)
from amf.tui.terminal_render import StyledRun, render_capture


@dataclass
class AppContext:
    """Everything the controller talks to."""

    store: ProjectStore
    store_path: Path
    tmux: TmuxManager
    worktrees: WorktreeManager
    config: Config = field(default_factory=Config)
    cwd: Path = field(default_factory=Path.cwd)


class Controller:
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx
        self.mode: Mode = NormalMode()
        self.selection = Selection(0)
        self.message: str | None = None
        self.should_quit = False
        self.pending_attach: str | None = None
        self.fatal: str | None = None
        self._last_resize: tuple[int, int, str, str] | None = None

    @property
    def store(self) -> ProjectStore:
        return self.ctx.store

    # ------------------------------------------------------------------ #
    # Persistence                                                          #
    # ------------------------------------------------------------------ #

    def _persist(self, leaked: str | None = None) -> None:
        try:
            self.store.save(self.ctx.store_path)
        except StoreWriteError as exc:
            detail = f"{exc}; {leaked} exists but is not recorded" if leaked else str(exc)
            logger.error(f"[controller] Store write failed: {detail}")
            self.fatal = detail
            self.should_quit = True
            raise

    def _error(self, text: str, *, to_normal: bool = False) -> None:
        self.message = f"Error: {text}"
        if to_normal:
            self.mode = NormalMode()

    # ------------------------------------------------------------------ #
    # Tree navigation                                                      #
    # ------------------------------------------------------------------ #

    def visible_items(self) -> list[VisibleItem]:
        items: list[VisibleItem] = []
        for pi, project in enumerate(self.store.projects):
            items.append(Selection(pi))
            if project.collapsed:
                continue
            for fi, feature in enumerate(project.features):
                items.append(Selection(pi, fi))
                if feature.collapsed:
                    continue
                for si in range(len(feature.sessions)):
                    items.append(Selection(pi, fi, si))
        return items

    def _selection_index(self, items: list[VisibleItem]) -> int:
        try:
            return items.index(self.selection)
        except ValueError:
            return 0

    def _step_selection(self, delta: int) -> None:
        items = self.visible_items()
        if not items:
            return
        idx = (self._selection_index(items) + delta) % len(items)
        self.selection = items[idx]

    def select_next(self) -> None:
        if isinstance(self.mode, ViewingMode):
            self.view_next_session()
        elif isinstance(self.mode, NormalMode):
            self._step_selection(1)
            self.message = None

    def select_prev(self) -> None:
        if isinstance(self.mode, ViewingMode):
            self.view_prev_session()
        elif isinstance(self.mode, NormalMode):
            self._step_selection(-1)
            self.message = None

    def select_parent(self) -> None:
        if isinstance(self.mode, NormalMode) and not self.selection.is_project:
            self.selection = Selection(self.selection.project)

    def _clamp_selection(self) -> None:
        items = self.visible_items()
        if not items:
            self.selection = Selection(0)
        elif self.selection not in items:
            self.selection = items[min(self._selection_index(items), len(items) - 1)]

    def selected_project(self) -> Project | None:
        if 0 <= self.selection.project < len(self.store.projects):
            return self.store.projects[self.selection.project]
        return None

    def selected_feature(self) -> tuple[Project, Feature] | None:
        project = self.selected_project()
        fi = self.selection.feature
        if project is None or fi is None or not 0 <= fi < len(project.features):
            return None
        return project, project.features[fi]

    def selected_session(self) -> tuple[Project, Feature, FeatureSession] | None:
        pair = self.selected_feature()
        si = self.selection.session
        if pair is None or si is None:
            return None
        project, feature = pair
        if not 0 <= si < len(feature.sessions):
            return None
        return project, feature, feature.sessions[si]

    def toggle_collapse(self) -> None:
        if not isinstance(self.mode, NormalMode):
            return
        sel = self.selection
        if sel.is_session:
            pair = self.selected_feature()
            if pair is not None:
                pair[1].collapsed = True
            self.selection = Selection(sel.project, sel.feature)
        elif sel.is_feature:
            pair = self.selected_feature()
            if pair is None:
                return
            pair[1].collapsed = not pair[1].collapsed
        else:
            project = self.selected_project()
            if project is None:
                return
            project.collapsed = not project.collapsed
        self._persist()

    def _select_feature(self, project: Project, feature: Feature, session_index: int | None = None) -> None:
        pi = self.store.projects.index(project)
        fi = project.features.index(feature)
        project.collapsed = False
        if session_index is not None:
            feature.collapsed = False
        self.selection = Selection(pi, fi, session_index)

    # ------------------------------------------------------------------ #
    # Create: editing                                                      #
    # ------------------------------------------------------------------ #

    def start_create_project(self) -> None:
        cwd = self.ctx.cwd
        try:
            path = str(self.ctx.worktrees.repo_root(cwd))
        except WorktreeError:
            path = str(cwd)
        self.mode = CreatingProjectMode(path=path)
        self.message = None

    def start_create_feature(self) -> None:
        project = self.selected_project()
        if project is None:
            self._error("Create a project first")
            return
        branch = self.ctx.worktrees.current_branch(self.ctx.cwd) or ""
        self.mode = CreatingFeatureMode(project_name=project.name, branch=branch)
        self.message = None

    def _field_name(self) -> str | None:
        mode = self.mode
        if isinstance(mode, (CreatingProjectMode, CreatingFeatureMode)):
            return mode.step.value
        if isinstance(mode, RenamingSessionMode):
            return "input"
        return None

    def insert_char(self, ch: str) -> None:
        name = self._field_name()
        if name is not None:
            setattr(self.mode, name, getattr(self.mode, name) + ch)

    def delete_char(self) -> None:
        name = self._field_name()
        if name is not None:
            setattr(self.mode, name, getattr(self.mode, name)[:-1])

    def _move_field(self, delta: int) -> None:
        mode = self.mode
        if not isinstance(mode, (CreatingProjectMode, CreatingFeatureMode)):
            return
        steps = mode.steps
        mode.step = steps[(steps.index(mode.step) + delta) % len(steps)]

    def next_field(self) -> None:
        self._move_field(1)

    def prev_field(self) -> None:
        self._move_field(-1)

    def commit(self) -> None:
        """Advance to the next field, or submit when on the last one."""
        mode = self.mode
        if not isinstance(mode, (CreatingProjectMode, CreatingFeatureMode)):
            return
        if mode.step is not mode.steps[-1]:
            self.next_field()
            return
        if isinstance(mode, CreatingProjectMode):
            self._create_project(mode)
        else:
            self._create_feature(mode)

    def cancel(self) -> None:
        mode = self.mode
        if isinstance(mode, (NormalMode, ViewingMode)):
            return
        if isinstance(mode, SessionSwitcherMode):
            self.cancel_session_switcher()
            return
        if isinstance(mode, RenamingSessionMode) and mode.return_to is not None:
            self.mode = mode.return_to
        else:
            self.mode = NormalMode()
        self.message = None

    # ------------------------------------------------------------------ #
    # Create: validation + side effects                                    #
    # ------------------------------------------------------------------ #

    def _create_project(self, mode: CreatingProjectMode) -> None:
        name = mode.name.strip()
        if not name:
            self._error("Project name cannot be empty")
            return
        if self.store.find_project(name) is not None:
            self._error(f"Project '{name}' already exists")
            return
        path = Path(mode.path.strip()).expanduser()
        if not mode.path.strip() or not path.exists():
            self._error(f"Path does not exist: {path}")
            return
        try:
            root, is_git = self.ctx.worktrees.repo_root(path), True
        except NotAGitRepoError:
            root, is_git = path.resolve(), False

        project = Project(name=name, repo=str(root), is_git=is_git)
        self.store.add_project(project)
        self._persist()
        self.selection = Selection(len(self.store.projects) - 1)
        self.mode = NormalMode()
        suffix = "" if is_git else " (not a git repository)"
        self.message = f"Created project '{name}'{suffix}"
        logger.info(f"[controller] Created project {name} at {root} git={is_git}")

    def _create_feature(self, mode: CreatingFeatureMode) -> None:
        name = mode.name.strip()
        branch = mode.branch.strip()
        project = self.store.find_project(mode.project_name)
        if project is None:
            self._error(f"Project '{mode.project_name}' not found", to_normal=True)
            return
        if not name:
            self._error("Feature name cannot be empty")
            return
        if project.find_feature(name) is not None:
            self._error(f"Feature '{name}' already exists in '{project.name}'")
            return
        session = session_name_for(name, self.ctx.tmux.prefix)
        if session in self.store.tracked_sessions():
            self._error(f"tmux session '{session}' is already used by another feature")
            return
        if self.ctx.tmux.session_exists(session):
            self._error(f"tmux session '{session}' already exists outside amf")
            return
        if not branch:
            self._error("Branch name cannot be empty")
            return
        repo = Path(project.repo)
        if not repo.exists():
            self._error(f"Project path does not exist: {repo}")
            return
        try:
            repo = self.ctx.worktrees.repo_root(repo)
            is_git = True
        except NotAGitRepoError:
            is_git = False
        if not is_git and project.features:
            self._error(f"{project.repo} is not a git repository; it can host only one feature")
            return

        needs_worktree = bool(project.features) and bool(branch)
        feature = self._launch_new_feature(project, repo, name, branch, session, needs_worktree)
        if feature is None:
            return

        project.is_git = is_git
        self.store.add_feature(project.name, feature)
        leaked = f"tmux session '{session}'"
        if feature.is_worktree:
            leaked += f" and worktree {feature.workdir}"
        self._persist(leaked=leaked)

        self._select_feature(project, feature)
        self.mode = NormalMode()
        where = f"worktree {feature.workdir}" if feature.is_worktree else feature.workdir
        self.message = f"Created feature '{name}' on {branch} in {where}"
        logger.info(f"[controller] Created feature {project.name}/{name} session={session} worktree={feature.is_worktree}")

    def _launch_new_feature(
        self,
        project: Project,
        repo: Path,
        name: str,
        branch: str,
        session: str,
        needs_worktree: bool,
    ) -> Feature | None:
        """Create the worktree and tmux session; undo both and return None on failure."""
        workdir = repo
        if needs_worktree:
            try:
                workdir = self.ctx.worktrees.create(repo, name, branch)
            except WorktreeError as exc:
                logger.warning(f"[controller] Worktree for {name} failed: {exc}")
                self._error(str(exc), to_normal=True)
                return None

        feature = Feature(
            name=name,
            branch=branch,
            workdir=str(workdir),
            is_worktree=needs_worktree,
            tmux_session=session,
        )
        feature.add_session(SessionKind.AGENT)
        feature.add_session(SessionKind.TERMINAL)
        try:
            self._start_tmux(feature)
        except TmuxError as exc:
            logger.warning(f"[controller] tmux for {name} failed: {exc}")
            self._rollback_launch(project, feature)
            self._error(str(exc), to_normal=True)
            return None
        return feature

    def _rollback_launch(self, project: Project, feature: Feature) -> None:
        # _start_tmux already killed any session it created.
        if feature.is_worktree:
            try:
                self.ctx.worktrees.remove(project.repo, feature.workdir)
            except WorktreeError as exc:
                logger.warning(f"[controller] Rollback remove {feature.workdir} failed: {exc}")

    # ------------------------------------------------------------------ #
    # Running features                                                     #
    # ------------------------------------------------------------------ #

    def _start_tmux(self, feature: Feature) -> None:
        """Create the feature's session with one window per stored session and launch agents.

        A launch failure kills the session this call created before re-raising.
        """
        tmux = self.ctx.tmux
        tmux.create_session(feature.tmux_session, feature.workdir, [s.window for s in feature.sessions])
        args = mode_args(feature.mode)
        try:
            for session in feature.sessions:
                if session.kind is SessionKind.AGENT:
                    tmux.launch(feature.tmux_session, session.window, session.resume_token, args)
        except TmuxError:
            try:
                tmux.kill(feature.tmux_session)
            except TmuxError as exc:
                logger.warning(f"[controller] Cleanup kill {feature.tmux_session} failed: {exc}")
            raise
        feature.status = FeatureStatus.IDLE
        feature.touch()

    def _ensure_running(self, feature: Feature) -> None:
        if not feature.sessions:
            feature.add_session(SessionKind.AGENT)
            feature.add_session(SessionKind.TERMINAL)
        if self.ctx.tmux.session_exists(feature.tmux_session):
            return
        self._start_tmux(feature)

    def start_feature(self) -> None:
        pair = self.selected_feature()
        if pair is None:
            return
        _, feature = pair
        if self.ctx.tmux.session_exists(feature.tmux_session):
            if feature.status is FeatureStatus.STOPPED:
                feature.status = FeatureStatus.IDLE
                self._persist()
            self._error(f"'{feature.name}' is already running")
            return
        try:
            self._ensure_running(feature)
        except TmuxError as exc:
            self._error(str(exc))
            return
        self._persist()
        self.message = f"Started '{feature.name}'"

    def stop_feature(self) -> None:
        pair = self.selected_feature()
        if pair is None:
            return
        _, feature = pair
        if feature.status is FeatureStatus.STOPPED and not self.ctx.tmux.session_exists(feature.tmux_session):
            self._error(f"'{feature.name}' is already stopped")
            return
        try:
            self.ctx.tmux.kill(feature.tmux_session)
        except TmuxError as exc:
            self._error(str(exc))
            return
        feature.status = FeatureStatus.STOPPED
        self._persist()
        self.message = f"Stopped '{feature.name}'"

    def _add_session(self, kind: SessionKind) -> None:
        pair = self.selected_feature()
        if pair is None:
            return
        project, feature = pair
        tmux = self.ctx.tmux
        if not tmux.session_exists(feature.tmux_session):
            self._error("Feature must be running to add a session")
            return
        session = feature.add_session(kind)
        try:
            tmux.create_window(feature.tmux_session, session.window, feature.workdir)
            if kind is SessionKind.AGENT:
                tmux.launch(feature.tmux_session, session.window, None, mode_args(feature.mode))
        except TmuxError as exc:
            feature.sessions.remove(session)
            self._error(str(exc))
            return
        self._select_feature(project, feature, len(feature.sessions) - 1)
        self._persist()
        self.message = f"Added '{session.label}'"

    def add_agent_session(self) -> None:
        self._add_session(SessionKind.AGENT)

    def add_terminal_session(self) -> None:
        self._add_session(SessionKind.TERMINAL)

    def remove_session(self) -> None:
        triple = self.selected_session()
        if triple is None:
            return
        project, feature, session = triple
        tmux = self.ctx.tmux
        problems: list[str] = []
        if tmux.session_exists(feature.tmux_session):
            try:
                tmux.kill_window(feature.tmux_session, session.window)
            except TmuxError as exc:
                problems.append(str(exc))
        feature.sessions.remove(session)
        if not feature.sessions:
            try:
                tmux.kill(feature.tmux_session)
            except TmuxError as exc:
                problems.append(str(exc))
            feature.status = FeatureStatus.STOPPED
        self._select_feature(project, feature)
        self._persist()
        self.message = f"Removed '{session.label}'"
        if problems:
            self.message += f" (cleanup: {'; '.join(problems)})"

    def cycle_mode(self) -> None:
        pair = self.selected_feature()
        if pair is None:
            return
        _, feature = pair
        feature.mode = feature.mode.next()
        self._persist()
        self.message = f"'{feature.name}' mode: {feature.mode.value} (applies to newly launched agents)"

    # ------------------------------------------------------------------ #
    # Delete                                                               #
    # ------------------------------------------------------------------ #

    def start_delete(self) -> None:
        if not isinstance(self.mode, NormalMode):
            return
        pair = self.selected_feature()
        if pair is not None:
            self.mode = DeletingFeatureMode(pair[0].name, pair[1].name)
            return
        project = self.selected_project()
        if project is not None:
            self.mode = DeletingProjectMode(project.name)

    def _teardown(self, project: Project, feature: Feature) -> list[str]:
        """Kill the session, then remove the worktree; failures are collected, not raised."""
        problems: list[str] = []
        try:
            self.ctx.tmux.kill(feature.tmux_session)
        except TmuxError as exc:
            logger.warning(f"[controller] Kill {feature.tmux_session} failed: {exc}")
            problems.append(str(exc))
        if feature.is_worktree:
            try:
                self.ctx.worktrees.remove(project.repo, feature.workdir)
            except WorktreeError as exc:
                logger.warning(f"[controller] Remove worktree {feature.workdir} failed: {exc}")
                problems.append(str(exc))
        return problems

    def confirm_delete(self) -> None:
        mode = self.mode
        if isinstance(mode, DeletingProjectMode):
            project = self.store.find_project(mode.project_name)
            problems: list[str] = []
            if project is not None:
                for feature in project.features:
                    problems += self._teardown(project, feature)
            self.store.remove_project(mode.project_name)
            last = max(len(self.store.projects) - 1, 0)
            self.selection = Selection(min(self.selection.project, last))
            label = f"project '{mode.project_name}'"
        elif isinstance(mode, DeletingFeatureMode):
            project = self.store.find_project(mode.project_name)
            feature = project.find_feature(mode.feature_name) if project else None
            problems = self._teardown(project, feature) if project and feature else []
            self.store.remove_feature(mode.project_name, mode.feature_name)
            if project is not None:
                self.selection = Selection(self.store.projects.index(project))
            label = f"feature '{mode.feature_name}'"
        else:
            return

        self._persist()
        self._clamp_selection()
        self.mode = NormalMode()
        self.message = f"Deleted {label}"
        if problems:
            self.message += f" (cleanup errors: {'; '.join(problems)})"
        logger.info(f"[controller] Deleted {label} problems={len(problems)}")

    # ------------------------------------------------------------------ #
    # Reconciliation                                                       #
    # ------------------------------------------------------------------ #

    def refresh_statuses(self) -> int:
        """Bring feature status in line with live tmux sessions."""
        live = self.ctx.tmux.list_sessions()
        changed = self.store.sync_statuses(live)
        if changed:
            self._persist()
        self.message = "Refreshed statuses"
        logger.debug(f"[controller] Reconciled live={len(live)} changed={changed}")
        return changed

    # ------------------------------------------------------------------ #
    # Help                                                                 #
    # ------------------------------------------------------------------ #

    def show_help(self) -> None:
        if isinstance(self.mode, NormalMode):
            self.mode = HelpMode()

    def close_help(self) -> None:
        if isinstance(self.mode, HelpMode):
            self.mode = NormalMode()

    # ------------------------------------------------------------------ #
    # Embedded view                                                        #
    # ------------------------------------------------------------------ #

    def _viewed(self) -> tuple[ViewState, Project, Feature] | None:
        if not isinstance(self.mode, ViewingMode):
            return None
        view = self.mode.view
        project = self.store.find_project(view.project_name)
        feature = project.find_feature(view.feature_name) if project else None
        if project is None or feature is None:
            return None
        return view, project, feature

    def _open_view(self, project: Project, feature: Feature, session: FeatureSession | None) -> None:
        try:
            self._ensure_running(feature)
        except TmuxError as exc:
            self._error(str(exc), to_normal=True)
            return
        target = session or feature.first_agent_session()
        if target is None:
            self._error(f"'{feature.name}' has no sessions", to_normal=True)
            return
        feature.touch()
        feature.status = FeatureStatus.ACTIVE
        self._persist()
        self.mode = ViewingMode(
            ViewState(
                project_name=project.name,
                feature_name=feature.name,
                session=feature.tmux_session,
                window=target.window,
                label=target.label,
            )
        )
        self._last_resize = None
        self.message = None

    def enter_view(self) -> None:
        if not isinstance(self.mode, NormalMode):
            return
        triple = self.selected_session()
        if triple is not None:
            self._open_view(*triple)
            return
        pair = self.selected_feature()
        if pair is not None:
            self._open_view(pair[0], pair[1], None)

    def exit_view(self) -> None:
        if isinstance(self.mode, ViewingMode):
            self.mode = NormalMode()
            self.message = "Returned to dashboard"

    def _cycle_session(self, delta: int) -> None:
        viewed = self._viewed()
        if viewed is None:
            return
        view, _, feature = viewed
        if len(feature.sessions) <= 1:
            return
        windows = [s.window for s in feature.sessions]
        idx = windows.index(view.window) if view.window in windows else 0
        target = feature.sessions[(idx + delta) % len(feature.sessions)]
        view.window = target.window
        view.label = target.label

    def view_next_session(self) -> None:
        self._cycle_session(1)

    def view_prev_session(self) -> None:
        self._cycle_session(-1)

    def _cycle_feature(self, delta: int) -> None:
        viewed = self._viewed()
        if viewed is None:
            return
        _, project, feature = viewed
        if len(project.features) <= 1:
            return
        idx = project.features.index(feature)
        target = project.features[(idx + delta) % len(project.features)]
        self._select_feature(project, target)
        self._open_view(project, target, None)

    def view_next_feature(self) -> None:
        self._cycle_feature(1)

    def view_prev_feature(self) -> None:
        self._cycle_feature(-1)

    def capture_view(self, rows: int, cols: int) -> list[list[StyledRun]]:
        """Render the viewed window at ``rows`` x ``cols``; empty when not viewing."""
        if not isinstance(self.mode, ViewingMode) or rows <= 0 or cols <= 0:
            return []
        view = self.mode.view
        tmux = self.ctx.tmux
        geometry = (cols, rows, view.session, view.window)
        if geometry != self._last_resize:
            try:
                tmux.resize_window(view.session, view.window, cols, rows)
            except TmuxError as exc:
                logger.debug(f"[controller] Resize {view.session}:{view.window} failed: {exc}")
            self._last_resize = geometry
        raw = tmux.capture_pane(view.session, view.window)
        cursor = tmux.cursor_position(view.session, view.window)
        return render_capture(raw, rows, cols, cursor)

    def invalidate_geometry(self) -> None:
        self._last_resize = None

    def forward_text(self, text: str) -> None:
        if not isinstance(self.mode, ViewingMode) or not text:
            return
        view = self.mode.view
        try:
            self.ctx.tmux.send_literal(view.session, view.window, text)
        except TmuxError as exc:
            self._error(str(exc))

    def forward_key(self, key_name: str) -> None:
        if not isinstance(self.mode, ViewingMode):
            return
        view = self.mode.view
        try:
            self.ctx.tmux.send_key_name(view.session, view.window, key_name)
        except TmuxError as exc:
            self._error(str(exc))

    def stop_viewed(self) -> None:
        viewed = self._viewed()
        if viewed is None:
            return
        view, _, feature = viewed
        try:
            self.ctx.tmux.kill(view.session)
        except TmuxError as exc:
            logger.warning(f"[controller] Kill {view.session} failed: {exc}")
        self.mode = NormalMode()
        self.refresh_statuses()
        self.message = f"Stopped '{feature.name}'"

    # ------------------------------------------------------------------ #
    # Session switcher + rename                                            #
    # ------------------------------------------------------------------ #

    def _feature_for(self, project_name: str, feature_name: str) -> Feature | None:
        project = self.store.find_project(project_name)
        return project.find_feature(feature_name) if project else None

    def switcher_entries(self) -> list[FeatureSession]:
        mode = self.mode
        if not isinstance(mode, SessionSwitcherMode):
            return []
        feature = self._feature_for(mode.view.project_name, mode.view.feature_name)
        return list(feature.sessions) if feature else []

    def open_session_switcher(self) -> None:
        viewed = self._viewed()
        if viewed is None:
            return
        view, _, feature = viewed
        if not feature.sessions:
            return
        windows = [s.window for s in feature.sessions]
        selected = windows.index(view.window) if view.window in windows else 0
        self.mode = SessionSwitcherMode(view=view, selected=selected)

    def _step_switcher(self, delta: int) -> None:
        mode = self.mode
        if not isinstance(mode, SessionSwitcherMode):
            return
        count = len(self.switcher_entries())
        if count:
            mode.selected = (mode.selected + delta) % count

    def switcher_next(self) -> None:
        self._step_switcher(1)

    def switcher_prev(self) -> None:
        self._step_switcher(-1)

    def switch_from_switcher(self) -> None:
        mode = self.mode
        if not isinstance(mode, SessionSwitcherMode):
            return
        entries = self.switcher_entries()
        if not entries:
            self.cancel_session_switcher()
            return
        target = entries[min(mode.selected, len(entries) - 1)]
        view = mode.view
        view.window = target.window
        view.label = target.label
        self.mode = ViewingMode(view)
        self._last_resize = None

    def cancel_session_switcher(self) -> None:
        if isinstance(self.mode, SessionSwitcherMode):
            self.mode = ViewingMode(self.mode.view)

    def start_rename_session(self) -> None:
        if not isinstance(self.mode, NormalMode):
            return
        triple = self.selected_session()
        if triple is None:
            return
        project, feature, session = triple
        self.mode = RenamingSessionMode(project.name, feature.name, session.window, input=session.label)
        self.message = None

    def start_rename_from_switcher(self) -> None:
        mode = self.mode
        if not isinstance(mode, SessionSwitcherMode):
            return
        entries = self.switcher_entries()
        if not entries:
            return
        session = entries[min(mode.selected, len(entries) - 1)]
        self.mode = RenamingSessionMode(
            mode.view.project_name,
            mode.view.feature_name,
            session.window,
            input=session.label,
            return_to=mode,
        )

    def apply_rename_session(self) -> None:
        mode = self.mode
        if not isinstance(mode, RenamingSessionMode):
            return
        label = mode.input.strip()
        if not label:
            self._error("Session name cannot be empty")
            return
        feature = self._feature_for(mode.project_name, mode.feature_name)
        session = next((s for s in feature.sessions if s.window == mode.window), None) if feature else None
        if session is None:
            self._error(f"Session '{mode.window}' no longer exists", to_normal=True)
            return
        session.label = label
        self._persist()
        switcher = mode.return_to
        if switcher is not None:
            if switcher.view.window == session.window:
                switcher.view.label = label
            self.mode = switcher
        else:
            self.mode = NormalMode()
        self.message = f"Renamed to '{label}'"
        logger.info(f"[controller] Renamed {mode.feature_name}:{mode.window} to {label}")

    # ------------------------------------------------------------------ #
    # Switching to tmux                                                    #
    # ------------------------------------------------------------------ #

    def _switch(self, feature: Feature, window: str | None) -> None:
        tmux = self.ctx.tmux
        try:
            self._ensure_running(feature)
        except TmuxError as exc:
            self._error(str(exc), to_normal=True)
            return
        feature.touch()
        feature.status = FeatureStatus.ACTIVE
        self._persist()
        if window:
            try:
                tmux.select_window(feature.tmux_session, window)
            except TmuxError as exc:
                logger.debug(f"[controller] select-window {window} failed: {exc}")
        if tmux.is_inside_tmux():
            try:
                tmux.switch_client(feature.tmux_session)
            except TmuxError as exc:
                self._error(str(exc))
                return
            self.message = f"Switched to {feature.tmux_session}"
        else:
            self.pending_attach = feature.tmux_session
            self.should_quit = True

    def switch_to_selected(self) -> None:
        triple = self.selected_session()
        if triple is not None:
            self._switch(triple[1], triple[2].window)
            return
        pair = self.selected_feature()
        if pair is not None:
            self._switch(pair[1], None)

    def switch_to_viewed(self) -> None:
        viewed = self._viewed()
        if viewed is None:
            return
        view, _, feature = viewed
        self.mode = NormalMode()
        self._switch(feature, view.window)

    def open_terminal(self) -> None:
        """Switch to the selected feature's first terminal window, adding one when needed."""
        pair = self.selected_feature()
        if pair is None:
            return
        _, feature = pair
        terminal = next((s for s in feature.sessions if s.kind is SessionKind.TERMINAL), None)
        if terminal is None and feature.sessions:
            terminal = feature.add_session(SessionKind.TERMINAL)
            if self.ctx.tmux.session_exists(feature.tmux_session):
                try:
                    self.ctx.tmux.create_window(feature.tmux_session, terminal.window, feature.workdir)
                except TmuxError as exc:
                    feature.sessions.remove(terminal)
                    self._error(str(exc))
                    return
        self._switch(feature, terminal.window if terminal else None)

    # ------------------------------------------------------------------ #
    # Status line                                                          #
    # ------------------------------------------------------------------ #

    def quit(self) -> None:
        self.should_quit = True

    def dialog_text(self) -> str | None:
        """Prompt for the active dialog, or None when no dialog is open."""
        mode = self.mode
        if isinstance(mode, CreatingProjectMode):
            marks = {step: ">" if step is mode.step else " " for step in mode.steps}
            return (
                f"New project  {marks[CreateStep.NAME]} name: {mode.name}   "
                f"{marks[CreateStep.PATH]} path: {mode.path}   [Enter] next/create  [Tab] field  [Esc] cancel"
            )
        if isinstance(mode, CreatingFeatureMode):
            marks = {step: ">" if step is mode.step else " " for step in mode.steps}
            return (
                f"New feature in {mode.project_name}  {marks[CreateStep.NAME]} name: {mode.name}   "
                f"{marks[CreateStep.BRANCH]} branch: {mode.branch}   [Enter] next/create  [Tab] field  [Esc] cancel"
            )
        if isinstance(mode, DeletingProjectMode):
            return f"Delete project '{mode.project_name}' and all its features? [y/n]"
        if isinstance(mode, DeletingFeatureMode):
            return f"Delete feature '{mode.feature_name}' from '{mode.project_name}'? [y/n]"
        if isinstance(mode, RenamingSessionMode):
            return f"Rename session in {mode.feature_name}: {mode.input}   [Enter] save  [Esc] cancel"
        if isinstance(mode, SessionSwitcherMode):
            rows = [
                f"{'>' if i == mode.selected else ' '} {s.label}"
                for i, s in enumerate(self.switcher_entries())
            ]
            return f"Sessions in {mode.view.feature_name}:  " + "  ".join(rows) + "   [Enter] view  [r] rename  [Esc] back"
        return None
