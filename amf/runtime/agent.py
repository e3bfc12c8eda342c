"""Coding-agent CLI: availability probe and launch command construction."""

from __future__ import annotations

import shlex
import subprocess
from typing import Any, Callable, Sequence

from loguru import logger

from amf.session.models import FeatureMode

DEFAULT_AGENT_COMMAND = "claude"

_MODE_ARGS: dict[FeatureMode, tuple[str, ...]] = {
    FeatureMode.VIBELESS: (),
    FeatureMode.VIBE: ("--permission-mode", "acceptEdits"),
    FeatureMode.SUPERVIBE: ("--dangerously-skip-permissions",),
}


class AgentNotFoundError(RuntimeError):
    """Raised when the agent CLI is missing or does not answer ``--version``."""


def check_available(
    command: str = DEFAULT_AGENT_COMMAND,
    runner: Callable[..., "subprocess.CompletedProcess[Any]"] | None = None,
) -> str:
    """Run ``<command> --version`` once and return its banner."""
    run = runner or subprocess.run
    try:
        proc = run([command, "--version"], capture_output=True, text=True, check=False, timeout=30)
    except FileNotFoundError as exc:
        raise AgentNotFoundError(f"{command} CLI not found - is it installed and on PATH?") from exc
    except (OSError, subprocess.SubprocessError) as exc:
        raise AgentNotFoundError(f"{command} --version failed: {exc}") from exc
    if proc.returncode != 0:
        raise AgentNotFoundError(f"{command} CLI returned an error (exit {proc.returncode})")
    banner = (proc.stdout or "").strip()
    logger.debug(f"[agent] {command} available: {banner}")
    return banner


def mode_args(mode: FeatureMode) -> tuple[str, ...]:
    """Permission flags the agent is started with for ``mode``."""
    return _MODE_ARGS[mode]


def build_launch_command(
    command: str = DEFAULT_AGENT_COMMAND,
    resume_token: str | None = None,
    mode: FeatureMode = FeatureMode.VIBELESS,
    extra_args: Sequence[str] = (),
) -> str:
    """Shell line typed into the agent window, e.g. ``claude --resume abc``."""
    parts = [command]
    if resume_token:
        parts += ["--resume", resume_token]
    parts += mode_args(mode)
    parts += list(extra_args)
    return shlex.join(parts)
