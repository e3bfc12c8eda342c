"""tmux integration: one session per feature, one window per agent/terminal.

Every call is a synchronous ``tmux`` subprocess. The runner is injectable so
tests can record commands without a tmux server; it is called like
``subprocess.run`` and must return a ``CompletedProcess``.
"""

from __future__ import annotations

import os
import subprocess
from typing import Any, Callable, Iterable, Sequence

from loguru import logger

from amf.runtime.agent import DEFAULT_AGENT_COMMAND, build_launch_command
from amf.session.models import DEFAULT_SESSION_PREFIX

Runner = Callable[..., "subprocess.CompletedProcess[Any]"]

DEFAULT_WINDOWS = ("agent-1", "terminal-1")
STATUS_HINT = " #[fg=cyan]prefix+s#[default]: sessions "


class TmuxError(RuntimeError):
    """Raised when a tmux command cannot be run or fails."""


class TmuxNotFoundError(TmuxError):
    """Raised when the tmux executable is not available."""


def _target(session: str, window: str) -> str:
    return f"{session}:{window}"


class TmuxManager:
    """Thin wrapper over the tmux verbs the dashboard needs."""

    def __init__(
        self,
        *,
        prefix: str = DEFAULT_SESSION_PREFIX,
        agent_command: str = DEFAULT_AGENT_COMMAND,
        runner: Runner | None = None,
        timeout_s: float | None = 10.0,
    ) -> None:
        self.prefix = prefix
        self.agent_command = agent_command
        self._runner: Runner = runner or subprocess.run
        self._timeout_s = timeout_s

    # ------------------------------------------------------------------ #
    # Process plumbing                                                     #
    # ------------------------------------------------------------------ #

    def _run(self, args: Sequence[str], *, binary: bool = False) -> subprocess.CompletedProcess[Any]:
        # Output is always captured so tmux never writes over the TUI.
        kwargs: dict[str, object] = {
            "capture_output": True,
            "check": False,
            "text": not binary,
        }
        if not binary:
            kwargs["errors"] = "replace"
        if self._timeout_s is not None:
            kwargs["timeout"] = self._timeout_s
        try:
            return self._runner(["tmux", *args], **kwargs)
        except FileNotFoundError as exc:
            raise TmuxNotFoundError("tmux is not installed or not in PATH") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise TmuxError(f"tmux {args[0]} failed: {exc}") from exc

    def _run_checked(self, args: Sequence[str], what: str) -> subprocess.CompletedProcess[Any]:
        proc = self._run(args)
        if proc.returncode != 0:
            detail = (proc.stderr or "").strip()
            raise TmuxError(f"{what} failed: {detail}" if detail else f"{what} failed")
        return proc

    # ------------------------------------------------------------------ #
    # Availability                                                         #
    # ------------------------------------------------------------------ #

    def check_available(self) -> str:
        """Return the ``tmux -V`` banner or raise ``TmuxNotFoundError``."""
        try:
            proc = self._run(["-V"])
        except TmuxNotFoundError:
            raise
        except TmuxError as exc:
            raise TmuxNotFoundError(str(exc)) from exc
        if proc.returncode != 0:
            raise TmuxNotFoundError("tmux is not installed or not in PATH")
        return (proc.stdout or "").strip()

    @staticmethod
    def is_inside_tmux() -> bool:
        return bool(os.environ.get("TMUX"))

    # ------------------------------------------------------------------ #
    # Sessions                                                             #
    # ------------------------------------------------------------------ #

    def session_exists(self, session: str) -> bool:
        try:
            return self._run(["has-session", "-t", session]).returncode == 0
        except TmuxError:
            return False

    def create_session(
        self,
        session: str,
        workdir: str,
        windows: Iterable[str] = DEFAULT_WINDOWS,
    ) -> None:
        """Create a detached session with ``windows``; the first one is selected."""
        names = list(windows)
        if not names:
            raise TmuxError("a tmux session needs at least one window")
        if self.session_exists(session):
            raise TmuxError(f"tmux session '{session}' already exists")

        self._run_checked(
            ["new-session", "-d", "-s", session, "-n", names[0], "-c", workdir],
            "tmux new-session",
        )
        for name in names[1:]:
            self.create_window(session, name, workdir)
        if len(names) > 1:
            self.select_window(session, names[0])
        self._run(["set-option", "-t", session, "status-right", STATUS_HINT])
        logger.info(f"[tmux] Created session {session} windows={names} cwd={workdir}")

    def kill(self, session: str) -> None:
        """Kill ``session``; a no-op when it does not exist."""
        if not self.session_exists(session):
            return
        self._run_checked(["kill-session", "-t", session], "tmux kill-session")
        logger.info(f"[tmux] Killed session {session}")

    def list_sessions(self) -> list[str]:
        """Return live session names carrying our prefix; ``[]`` on any failure."""
        try:
            proc = self._run(["list-sessions", "-F", "#{session_name}"])
        except TmuxError as exc:
            logger.debug(f"[tmux] list-sessions failed: {exc}")
            return []
        if proc.returncode != 0:
            return []
        return [
            line.strip()
            for line in (proc.stdout or "").splitlines()
            if line.strip().startswith(self.prefix)
        ]

    def attach(self, session: str) -> None:
        """Switch the current client to ``session``, or attach when outside tmux."""
        if not self.session_exists(session):
            raise TmuxError(f"tmux session '{session}' does not exist")
        try:
            switched = self._run(["switch-client", "-t", session]).returncode == 0
        except TmuxError:
            switched = False
        if switched:
            return
        # Blocking attach needs the real terminal, so nothing is captured.
        try:
            self._runner(["tmux", "attach-session", "-t", session], check=False)
        except OSError as exc:
            raise TmuxError(f"tmux attach-session failed: {exc}") from exc

    def switch_client(self, session: str) -> None:
        self._run_checked(["switch-client", "-t", session], "tmux switch-client")

    # ------------------------------------------------------------------ #
    # Windows                                                              #
    # ------------------------------------------------------------------ #

    def create_window(self, session: str, window: str, workdir: str) -> None:
        self._run_checked(
            ["new-window", "-t", f"{session}:", "-n", window, "-c", workdir],
            "tmux new-window",
        )

    def select_window(self, session: str, window: str) -> None:
        self._run_checked(["select-window", "-t", _target(session, window)], "tmux select-window")

    def kill_window(self, session: str, window: str) -> None:
        self._run_checked(["kill-window", "-t", _target(session, window)], "tmux kill-window")

    def list_windows(self, session: str) -> list[str]:
        try:
            proc = self._run(["list-windows", "-t", session, "-F", "#{window_name}"])
        except TmuxError:
            return []
        if proc.returncode != 0:
            return []
        return [line for line in (proc.stdout or "").splitlines() if line]

    # ------------------------------------------------------------------ #
    # Agent + input                                                        #
    # ------------------------------------------------------------------ #

    def launch(
        self,
        session: str,
        window: str,
        resume_token: str | None = None,
        args: Sequence[str] = (),
    ) -> None:
        """Type the agent command into ``window`` and press Enter."""
        command = build_launch_command(self.agent_command, resume_token, extra_args=args)
        self.send_keys(session, window, command)
        logger.info(f"[tmux] Launched agent in {_target(session, window)}: {command}")

    def send_keys(self, session: str, window: str, text: str) -> None:
        self._run_checked(["send-keys", "-t", _target(session, window), text, "Enter"], "tmux send-keys")

    def send_literal(self, session: str, window: str, text: str) -> None:
        self._run_checked(["send-keys", "-t", _target(session, window), "-l", text], "tmux send-keys")

    def send_key_name(self, session: str, window: str, key_name: str) -> None:
        self._run_checked(["send-keys", "-t", _target(session, window), key_name], "tmux send-keys")

    # ------------------------------------------------------------------ #
    # Embedded view                                                        #
    # ------------------------------------------------------------------ #

    def capture_pane(self, session: str, window: str) -> bytes:
        """Visible screen of ``window`` with escape sequences; ``b""`` on failure."""
        try:
            proc = self._run(["capture-pane", "-t", _target(session, window), "-e", "-p"], binary=True)
        except TmuxError as exc:
            logger.debug(f"[tmux] capture-pane failed: {exc}")
            return b""
        if proc.returncode != 0:
            return b""
        out = proc.stdout or b""
        return out.encode("utf-8") if isinstance(out, str) else out

    def cursor_position(self, session: str, window: str) -> tuple[int, int] | None:
        """Return ``(col, row)`` of the pane cursor, or None."""
        try:
            proc = self._run(
                ["display-message", "-t", _target(session, window), "-p", "#{cursor_x} #{cursor_y}"]
            )
        except TmuxError:
            return None
        if proc.returncode != 0:
            return None
        parts = (proc.stdout or "").split()
        if len(parts) != 2:
            return None
        try:
            return int(parts[0]), int(parts[1])
        except ValueError:
            return None

    def resize_window(self, session: str, window: str, cols: int, rows: int) -> None:
        self._run_checked(
            ["resize-window", "-t", _target(session, window), "-x", str(cols), "-y", str(rows)],
            "tmux resize-window",
        )
