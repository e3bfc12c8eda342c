from __future__ import annotations

import subprocess

import pytest

from amf.runtime.tmux import STATUS_HINT, TmuxError, TmuxManager, TmuxNotFoundError


class FakeRunner:
    """Records tmux argv lists and answers from a table of canned results."""

    def __init__(self, responses: dict[str, tuple[int, object]] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        self.kwargs.append(kwargs)
        verb = argv[1]
        code, out = self.responses.get(verb, (0, b"" if not kwargs.get("text", True) else ""))
        if isinstance(code, type) and issubclass(code, BaseException):
            raise code(out)
        return subprocess.CompletedProcess(argv, code, stdout=out, stderr="boom" if code else "")

    def verbs(self) -> list[str]:
        return [argv[1] for argv in self.calls]


def _manager(runner: FakeRunner, **kwargs) -> TmuxManager:
    return TmuxManager(prefix="amf-", agent_command="claude", runner=runner, **kwargs)


def test_create_session_builds_windows_in_order() -> None:
    runner = FakeRunner({"has-session": (1, "")})
    tmux = _manager(runner)

    tmux.create_session("amf-x", "/repo", ["agent-1", "terminal-1", "agent-2"])

    assert runner.calls[1] == ["tmux", "new-session", "-d", "-s", "amf-x", "-n", "agent-1", "-c", "/repo"]
    assert runner.calls[2] == ["tmux", "new-window", "-t", "amf-x:", "-n", "terminal-1", "-c", "/repo"]
    assert runner.calls[3][5] == "agent-2"
    assert runner.calls[4] == ["tmux", "select-window", "-t", "amf-x:agent-1"]
    assert runner.calls[5] == ["tmux", "set-option", "-t", "amf-x", "status-right", STATUS_HINT]


def test_create_session_refuses_existing() -> None:
    runner = FakeRunner()
    tmux = _manager(runner)

    with pytest.raises(TmuxError, match="already exists"):
        tmux.create_session("amf-x", "/repo")

    assert runner.verbs() == ["has-session"]


def test_create_session_needs_a_window() -> None:
    with pytest.raises(TmuxError):
        _manager(FakeRunner()).create_session("amf-x", "/repo", [])


def test_failed_command_raises_with_stderr() -> None:
    runner = FakeRunner({"has-session": (1, ""), "new-session": (1, "")})

    with pytest.raises(TmuxError, match="tmux new-session failed: boom"):
        _manager(runner).create_session("amf-x", "/repo")


def test_output_is_always_captured_with_timeout() -> None:
    runner = FakeRunner()
    _manager(runner, timeout_s=3.0).session_exists("amf-x")

    assert runner.kwargs[0] == {
        "capture_output": True,
        "check": False,
        "text": True,
        "errors": "replace",
        "timeout": 3.0,
    }


def test_missing_binary() -> None:
    runner = FakeRunner({"-V": (FileNotFoundError, "tmux")})

    with pytest.raises(TmuxNotFoundError):
        _manager(runner).check_available()


def test_check_available_returns_banner() -> None:
    runner = FakeRunner({"-V": (0, "tmux 3.4\n")})

    assert _manager(runner).check_available() == "tmux 3.4"


def test_list_sessions_filters_prefix() -> None:
    runner = FakeRunner({"list-sessions": (0, "amf-a\nwork\namf-b\n")})

    assert _manager(runner).list_sessions() == ["amf-a", "amf-b"]


def test_list_sessions_without_server_is_empty() -> None:
    runner = FakeRunner({"list-sessions": (1, "")})

    assert _manager(runner).list_sessions() == []


def test_kill_absent_session_is_noop() -> None:
    runner = FakeRunner({"has-session": (1, "")})

    _manager(runner).kill("amf-x")

    assert runner.verbs() == ["has-session"]


def test_launch_types_agent_command() -> None:
    runner = FakeRunner()

    _manager(runner).launch("amf-x", "agent-1", "abc", ("--permission-mode", "acceptEdits"))

    assert runner.calls[0] == [
        "tmux",
        "send-keys",
        "-t",
        "amf-x:agent-1",
        "claude --resume abc --permission-mode acceptEdits",
        "Enter",
    ]


def test_send_literal_and_named_keys() -> None:
    runner = FakeRunner()
    tmux = _manager(runner)

    tmux.send_literal("amf-x", "agent-1", "hi there")
    tmux.send_key_name("amf-x", "agent-1", "C-c")

    assert runner.calls[0][-2:] == ["-l", "hi there"]
    assert runner.calls[1][-1] == "C-c"


def test_capture_pane_is_binary() -> None:
    runner = FakeRunner({"capture-pane": (0, b"\x1b[31mred\x1b[0m\n")})

    out = _manager(runner).capture_pane("amf-x", "agent-1")

    assert out == b"\x1b[31mred\x1b[0m\n"
    assert runner.kwargs[0]["text"] is False
    assert "errors" not in runner.kwargs[0]
    assert runner.calls[0] == ["tmux", "capture-pane", "-t", "amf-x:agent-1", "-e", "-p"]


def test_capture_pane_failure_is_empty() -> None:
    runner = FakeRunner({"capture-pane": (1, b"")})

    assert _manager(runner).capture_pane("amf-x", "agent-1") == b""


@pytest.mark.parametrize(
    "stdout, expected",
    [("3 7\n", (3, 7)), ("", None), ("x y", None)],
)
def test_cursor_position(stdout: str, expected) -> None:
    runner = FakeRunner({"display-message": (0, stdout)})

    assert _manager(runner).cursor_position("amf-x", "agent-1") == expected


def test_resize_window() -> None:
    runner = FakeRunner()

    _manager(runner).resize_window("amf-x", "agent-1", 120, 40)

    assert runner.calls[0] == ["tmux", "resize-window", "-t", "amf-x:agent-1", "-x", "120", "-y", "40"]


def test_attach_falls_back_to_attach_session() -> None:
    runner = FakeRunner({"switch-client": (1, "")})

    _manager(runner).attach("amf-x")

    assert runner.verbs() == ["has-session", "switch-client", "attach-session"]
    assert "capture_output" not in runner.kwargs[-1]


def test_attach_missing_session() -> None:
    runner = FakeRunner({"has-session": (1, "")})

    with pytest.raises(TmuxError, match="does not exist"):
        _manager(runner).attach("amf-x")


def test_inside_tmux_reads_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")
    assert TmuxManager.is_inside_tmux() is True
    monkeypatch.delenv("TMUX")
    assert TmuxManager.is_inside_tmux() is False
