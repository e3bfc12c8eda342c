"""Textual dashboard: project tree, embedded tmux view and status bar."""

from __future__ import annotations

from rich.text import Text
from textual.app import App, ComposeResult
from textual.events import Key, Paste
from textual.timer import Timer
from textual.widgets import Static

from amf.session.project_store import StoreWriteError
from amf.tui import theme
from amf.tui.controller import Controller
from amf.tui.modes import (
    CreatingFeatureMode,
    CreatingProjectMode,
    DeletingFeatureMode,
    DeletingProjectMode,
    HelpMode,
    NormalMode,
    RenamingSessionMode,
    SessionSwitcherMode,
    ViewingMode,
)
from amf.tui.terminal_render import to_rich_text
from amf.usage.monitor import UsageMonitor

# textual key names -> tmux key names for the embedded view.
TMUX_KEY_MAP = {
    "enter": "Enter",
    "backspace": "BSpace",
    "tab": "Tab",
    "shift+tab": "BTab",
    "escape": "Escape",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "home": "Home",
    "end": "End",
    "pageup": "PPage",
    "pagedown": "NPage",
    "delete": "DC",
    "insert": "IC",
    **{f"f{n}": f"F{n}" for n in range(1, 13)},
}

LEADER_KEYS = {"ctrl+space", "ctrl+@"}


def tmux_key_for(key: str, character: str | None) -> tuple[str, str] | None:
    """Translate a textual key event to ``("named"|"literal", value)``."""
    if key in TMUX_KEY_MAP:
        return "named", TMUX_KEY_MAP[key]
    if key.startswith("ctrl+") and len(key) == 6 and "a" <= key[-1] <= "z":
        return "named", f"C-{key[-1]}"
    if character and character.isprintable():
        return "literal", character
    return None


class DashboardApp(App):
    CSS = f"""
    Screen {{
        background: {theme.COLOR_BG_APP};
        color: {theme.COLOR_TEXT};
    }}

    #header {{
        height: 1;
        background: {theme.COLOR_STATUS_BG};
        color: {theme.COLOR_ACCENT};
        padding: 0 1;
        text-style: bold;
    }}

    #tree {{
        height: 1fr;
        padding: 0 1;
        background: {theme.COLOR_BG_PANEL};
        border: round {theme.COLOR_BORDER};
    }}

    #pane {{
        height: 1fr;
        display: none;
    }}

    #dialog {{
        height: auto;
        display: none;
        padding: 0 1;
        border: round {theme.COLOR_ACCENT};
    }}

    #status-bar {{
        dock: bottom;
        height: 1;
        background: {theme.COLOR_STATUS_BG};
        color: {theme.COLOR_TEXT_MUTED};
        padding: 0 1;
    }}
    """

    def __init__(
        self,
        controller: Controller,
        usage: UsageMonitor | None = None,
        *,
        view_tick_ms: int = 50,
        idle_tick_ms: int = 250,
    ) -> None:
        super().__init__()
        self.controller = controller
        self.usage = usage
        self._view_tick_s = view_tick_ms / 1000.0
        self._idle_tick_s = idle_tick_ms / 1000.0
        self._tick_s = self._idle_tick_s
        self._timer: Timer | None = None
        self._leader = False
        self._usage_line = ""

    def compose(self) -> ComposeResult:
        yield Static("", id="header")
        yield Static("", id="tree")
        yield Static("", id="pane")
        yield Static("", id="dialog")
        yield Static("", id="status-bar")

    def on_mount(self) -> None:
        self._timer = self.set_interval(self._tick_s, self._tick)
        if self.usage is not None:
            self.usage.start()
        self.refresh_view()

    def on_unmount(self) -> None:
        if self.usage is not None:
            self.usage.stop()

    # ------------------------------------------------------------------ #
    # Timer                                                                #
    # ------------------------------------------------------------------ #

    def _tick(self) -> None:
        wanted = self._view_tick_s if isinstance(self.controller.mode, ViewingMode) else self._idle_tick_s
        if wanted != self._tick_s and self._timer is not None:
            self._timer.stop()
            self._tick_s = wanted
            self._timer = self.set_interval(wanted, self._tick)
        if self.usage is not None:
            snapshot = self.usage.latest()
            if snapshot is not None:
                self._usage_line = snapshot.format_status()
        self.refresh_view()

    # ------------------------------------------------------------------ #
    # Input                                                                #
    # ------------------------------------------------------------------ #

    def on_key(self, event: Key) -> None:
        event.stop()
        event.prevent_default()
        try:
            self._dispatch(event.key, event.character)
        except StoreWriteError:
            self.exit(return_code=1)
            return
        self.refresh_view()

    def on_paste(self, event: Paste) -> None:
        ctl = self.controller
        if isinstance(ctl.mode, ViewingMode):
            ctl.forward_text(event.text)
        elif isinstance(ctl.mode, (CreatingProjectMode, CreatingFeatureMode, RenamingSessionMode)):
            for ch in event.text:
                if ch.isprintable():
                    ctl.insert_char(ch)
        self.refresh_view()

    def _dispatch(self, key: str, character: str | None) -> None:
        mode = self.controller.mode
        if isinstance(mode, ViewingMode):
            self._view_key(key, character)
        elif isinstance(mode, (CreatingProjectMode, CreatingFeatureMode)):
            self._create_key(key, character)
        elif isinstance(mode, (DeletingProjectMode, DeletingFeatureMode)):
            self._delete_key(key)
        elif isinstance(mode, SessionSwitcherMode):
            self._switcher_key(key)
        elif isinstance(mode, RenamingSessionMode):
            self._rename_key(key, character)
        elif isinstance(mode, HelpMode):
            if key in {"escape", "q", "question_mark"}:
                self.controller.close_help()
        else:
            self._normal_key(key, character)

    def _normal_key(self, key: str, character: str | None) -> None:
        ctl = self.controller
        sel = ctl.selection
        if key in {"q", "escape"}:
            ctl.quit()
        elif key in {"j", "down"}:
            ctl.select_next()
        elif key in {"k", "up"}:
            ctl.select_prev()
        elif key == "enter":
            if sel.is_session:
                ctl.enter_view()
            else:
                ctl.toggle_collapse()
        elif key == "e":
            ctl.enter_view()
        elif key == "h":
            if sel.is_project:
                project = ctl.selected_project()
                if project is not None and not project.collapsed:
                    ctl.toggle_collapse()
            else:
                ctl.select_parent()
        elif key == "l":
            project = ctl.selected_project()
            if sel.is_project and project is not None and project.collapsed:
                ctl.toggle_collapse()
        elif character == "R":
            ctl.start_rename_session()
        elif character == "N":
            ctl.start_create_project()
        elif character == "n":
            ctl.start_create_feature()
        elif key == "c":
            ctl.start_feature()
        elif key == "x":
            if sel.is_session:
                ctl.remove_session()
            else:
                ctl.stop_feature()
        elif key == "d":
            if sel.is_session:
                ctl.remove_session()
            else:
                ctl.start_delete()
        elif key == "s":
            ctl.switch_to_selected()
        elif character == "T":
            ctl.open_terminal()
        elif key == "t":
            ctl.add_terminal_session()
        elif key == "a":
            ctl.add_agent_session()
        elif key == "m":
            ctl.cycle_mode()
        elif key == "r":
            ctl.refresh_statuses()
        elif key == "question_mark":
            ctl.show_help()

    def _create_key(self, key: str, character: str | None) -> None:
        ctl = self.controller
        if key == "escape":
            ctl.cancel()
        elif key == "enter":
            ctl.commit()
        elif key == "tab":
            ctl.next_field()
        elif key == "shift+tab":
            ctl.prev_field()
        elif key == "backspace":
            ctl.delete_char()
        elif character and character.isprintable():
            ctl.insert_char(character)

    def _switcher_key(self, key: str) -> None:
        ctl = self.controller
        if key in {"j", "down"}:
            ctl.switcher_next()
        elif key in {"k", "up"}:
            ctl.switcher_prev()
        elif key == "enter":
            ctl.switch_from_switcher()
        elif key == "r":
            ctl.start_rename_from_switcher()
        elif key in {"escape", "q"}:
            ctl.cancel_session_switcher()

    def _rename_key(self, key: str, character: str | None) -> None:
        ctl = self.controller
        if key == "escape":
            ctl.cancel()
        elif key == "enter":
            ctl.apply_rename_session()
        elif key == "backspace":
            ctl.delete_char()
        elif character and character.isprintable():
            ctl.insert_char(character)

    def _delete_key(self, key: str) -> None:
        if key == "y":
            self.controller.confirm_delete()
        elif key in {"n", "escape"}:
            self.controller.cancel()

    def _view_key(self, key: str, character: str | None) -> None:
        ctl = self.controller
        if self._leader:
            self._leader = False
            self._leader_key(character or key)
            return
        if key == "ctrl+q":
            ctl.exit_view()
            return
        if key in LEADER_KEYS:
            self._leader = True
            return
        translated = tmux_key_for(key, character)
        if translated is None:
            return
        kind, value = translated
        if kind == "named":
            ctl.forward_key(value)
        else:
            ctl.forward_text(value)

    def _leader_key(self, key: str) -> None:
        ctl = self.controller
        if key == "q":
            ctl.exit_view()
        elif key == "t":
            ctl.view_next_session()
        elif key == "T":
            ctl.view_prev_session()
        elif key == "n":
            ctl.view_next_feature()
        elif key == "p":
            ctl.view_prev_feature()
        elif key == "w":
            ctl.open_session_switcher()
        elif key == "s":
            ctl.switch_to_viewed()
        elif key == "x":
            ctl.stop_viewed()
        elif key == "r":
            ctl.refresh_statuses()
        elif key == "?":
            ctl.exit_view()
            ctl.show_help()

    # ------------------------------------------------------------------ #
    # Rendering                                                            #
    # ------------------------------------------------------------------ #

    def on_resize(self) -> None:
        self.controller.invalidate_geometry()

    def refresh_view(self) -> None:
        ctl = self.controller
        if ctl.should_quit:
            self.exit()
            return

        # The switcher overlays the last captured frame.
        viewing = isinstance(ctl.mode, (ViewingMode, SessionSwitcherMode))
        tree = self.query_one("#tree", Static)
        pane = self.query_one("#pane", Static)
        dialog = self.query_one("#dialog", Static)
        tree.display = not viewing
        pane.display = viewing

        if viewing:
            view = ctl.mode.view
            self.query_one("#header", Static).update(
                f"{view.project_name} / {view.feature_name} / {view.label}   "
                f"Ctrl+Q back · Ctrl+Space leader"
            )
            if isinstance(ctl.mode, ViewingMode):
                size = pane.size
                grid = ctl.capture_view(size.height, size.width)
                pane.update(to_rich_text(grid))
        else:
            self.query_one("#header", Static).update("amf · projects")
            tree.update(self._render_help() if isinstance(ctl.mode, HelpMode) else self._render_tree())

        prompt = ctl.dialog_text()
        dialog.display = prompt is not None
        if prompt is not None:
            dialog.update(prompt)

        status = ctl.message or "? help · q quit"
        if self._leader:
            status = "leader: t/T session · w sessions · n/p feature · s switch · x stop · q back"
        if self._usage_line:
            status = f"{status}   |   {self._usage_line}"
        self.query_one("#status-bar", Static).update(status)

    def _render_tree(self) -> Text:
        ctl = self.controller
        text = Text()
        if not ctl.store.projects:
            text.append("No projects yet. Press N to create one.", style=theme.COLOR_TEXT_MUTED)
            return text
        selected = ctl.selection if isinstance(ctl.mode, NormalMode) else None
        lines: list[Text] = []
        for item in ctl.visible_items():
            project = ctl.store.projects[item.project]
            line = Text()
            if item.is_project:
                arrow = "▸" if project.collapsed else "▾"
                line.append(f"{arrow} {project.name}", style="bold")
                line.append(f"  {project.repo}", style=theme.COLOR_TEXT_MUTED)
                if not project.is_git:
                    line.append("  (no git)", style=theme.COLOR_WARNING)
            elif item.is_feature:
                feature = project.features[item.feature]
                glyph, color = theme.STATUS_GLYPHS[feature.status]
                arrow = "▸" if feature.collapsed else "▾"
                line.append(f"   {arrow} ")
                line.append(glyph, style=color)
                line.append(f" {feature.name}")
                line.append(f"  [{feature.branch}]", style=theme.COLOR_TEXT_MUTED)
                if feature.is_worktree:
                    line.append("  worktree", style=theme.COLOR_ACCENT)
                badge, badge_color = theme.MODE_BADGES[feature.mode]
                if badge:
                    line.append(f"  {badge}", style=badge_color)
            else:
                feature = project.features[item.feature]
                session = feature.sessions[item.session]
                marker = "»" if session.kind.value == "agent" else "$"
                line.append(f"       {marker} {session.label}")
                line.append(f"  {session.window}", style=theme.COLOR_TEXT_MUTED)
            if item == selected:
                line.stylize("reverse")
            lines.append(line)
        return Text("\n").join(lines)

    def _render_help(self) -> Text:
        text = Text()
        for keys, desc in theme.HELP_LINES:
            if not desc:
                text.append(f"\n{keys}\n", style="bold")
                continue
            text.append(f"  {keys:<24}", style=theme.COLOR_ACCENT)
            text.append(f"{desc}\n")
        return text
