"""External processes: tmux sessions, git worktrees and the agent CLI."""

from amf.runtime.agent import AgentNotFoundError, build_launch_command, mode_args
from amf.runtime.tmux import TmuxError, TmuxManager, TmuxNotFoundError
from amf.runtime.worktree import NotAGitRepoError, WorktreeError, WorktreeInfo, WorktreeManager

__all__ = [
    "AgentNotFoundError",
    "NotAGitRepoError",
    "TmuxError",
    "TmuxManager",
    "TmuxNotFoundError",
    "WorktreeError",
    "WorktreeInfo",
    "WorktreeManager",
    "build_launch_command",
    "mode_args",
]
