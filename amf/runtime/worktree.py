"""git worktree management for isolated features.

Worktrees live under ``<repo>/.worktrees/<name>``. Read-only queries
(``list``, ``current_branch``, ``is_worktree``) never raise; mutations raise
``WorktreeError``.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from loguru import logger

Runner = Callable[..., "subprocess.CompletedProcess[Any]"]

WORKTREES_DIRNAME = ".worktrees"
SETTINGS_RELPATH = Path(".claude") / "settings.local.json"


class WorktreeError(RuntimeError):
    """Raised when a git worktree operation fails."""


class NotAGitRepoError(WorktreeError):
    """Raised when a path is not inside a git repository."""


@dataclass(frozen=True)
class WorktreeInfo:
    path: Path
    branch: str | None = None


def parse_worktree_porcelain(text: str) -> list[WorktreeInfo]:
    """Parse ``git worktree list --porcelain`` output."""
    worktrees: list[WorktreeInfo] = []
    path: Path | None = None
    branch: str | None = None
    for line in text.splitlines():
        if line.startswith("worktree "):
            if path is not None:
                worktrees.append(WorktreeInfo(path=path, branch=branch))
            path = Path(line[len("worktree "):])
            branch = None
        elif line.startswith("branch refs/heads/"):
            branch = line[len("branch refs/heads/"):]
    if path is not None:
        worktrees.append(WorktreeInfo(path=path, branch=branch))
    return worktrees


def merge_settings(src: dict[str, Any], dest: dict[str, Any]) -> dict[str, Any]:
    """Merge ``src`` into ``dest`` one level deep: objects key by key, scalars replaced."""
    merged = dict(dest)
    for key, value in src.items():
        existing = merged.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            merged[key] = {**existing, **value}
        elif isinstance(value, dict) and key not in merged:
            merged[key] = dict(value)
        else:
            merged[key] = value
    return merged


class WorktreeManager:
    def __init__(self, *, runner: Runner | None = None, timeout_s: float | None = 60.0) -> None:
        self._runner: Runner = runner or subprocess.run
        self._timeout_s = timeout_s

    def _git(self, args: Sequence[str], cwd: str | Path) -> subprocess.CompletedProcess[Any]:
        kwargs: dict[str, object] = {
            "cwd": str(cwd),
            "capture_output": True,
            "text": True,
            "errors": "replace",
            "check": False,
        }
        if self._timeout_s is not None:
            kwargs["timeout"] = self._timeout_s
        try:
            return self._runner(["git", *args], **kwargs)
        except (OSError, subprocess.SubprocessError) as exc:
            raise WorktreeError(f"git {args[0]} failed: {exc}") from exc

    def _query(self, args: Sequence[str], cwd: str | Path) -> str | None:
        """Run a read-only git command; stripped stdout or None on any failure."""
        try:
            proc = self._git(args, cwd)
        except WorktreeError:
            return None
        if proc.returncode != 0:
            return None
        return (proc.stdout or "").strip()

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def repo_root(self, path: str | Path) -> Path:
        """Return the top-level directory of the repository containing ``path``."""
        root = self._query(["rev-parse", "--show-toplevel"], path)
        if not root:
            raise NotAGitRepoError(f"{path} is not inside a git repository")
        return Path(root)

    def is_worktree(self, path: str | Path) -> bool:
        """True when ``path`` is a linked worktree rather than the main checkout."""
        common = self._query(["rev-parse", "--git-common-dir"], path)
        git_dir = self._query(["rev-parse", "--git-dir"], path)
        if common is None or git_dir is None:
            return False
        return common != git_dir

    def branch_exists(self, repo: str | Path, branch: str) -> bool:
        return self._query(["rev-parse", "--verify", branch], repo) is not None

    def list(self, repo: str | Path) -> list[WorktreeInfo]:
        out = self._query(["worktree", "list", "--porcelain"], repo)
        return parse_worktree_porcelain(out) if out else []

    def current_branch(self, path: str | Path) -> str | None:
        return self._query(["branch", "--show-current"], path) or None

    # ------------------------------------------------------------------ #
    # Mutations                                                            #
    # ------------------------------------------------------------------ #

    def worktree_path(self, repo: str | Path, name: str) -> Path:
        return Path(repo) / WORKTREES_DIRNAME / name.replace("/", "-")

    def create(self, repo: str | Path, name: str, branch: str) -> Path:
        """Create ``<repo>/.worktrees/<name>`` on ``branch`` (created when missing)."""
        path = self.worktree_path(repo, name)
        if path.exists():
            raise WorktreeError(f"Worktree path already exists: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorktreeError(f"Cannot create {path.parent}: {exc}") from exc

        if self.branch_exists(repo, branch):
            args = ["worktree", "add", str(path), branch]
        else:
            args = ["worktree", "add", "-b", branch, str(path)]
        proc = self._git(args, repo)
        if proc.returncode != 0:
            raise WorktreeError(f"git worktree add failed: {(proc.stderr or '').strip()}")
        logger.info(f"[worktree] Created {path} on branch {branch}")

        # Settings inheritance is best-effort; the worktree is usable without it.
        try:
            self.inherit_settings(Path(repo), path)
        except WorktreeError as exc:
            logger.warning(f"[worktree] Settings not inherited into {path}: {exc}")
        return path

    def inherit_settings(self, repo: Path, worktree: Path) -> None:
        """Merge the repo's local agent settings into the worktree's copy."""
        src_file = repo / SETTINGS_RELPATH
        if not src_file.exists():
            return
        dest_file = worktree / SETTINGS_RELPATH
        try:
            src = json.loads(src_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise WorktreeError(f"Cannot read {src_file}: {exc}") from exc
        dest: Any = {}
        if dest_file.exists():
            try:
                dest = json.loads(dest_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                dest = {}
        if isinstance(src, dict) and isinstance(dest, dict):
            merged = merge_settings(src, dest)
        else:
            merged = src
        try:
            dest_file.parent.mkdir(parents=True, exist_ok=True)
            dest_file.write_text(json.dumps(merged, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise WorktreeError(f"Cannot write {dest_file}: {exc}") from exc

    def remove(self, repo: str | Path, path: str | Path) -> None:
        """Force-remove the worktree at ``path``."""
        proc = self._git(["worktree", "remove", "--force", str(path)], repo)
        if proc.returncode != 0:
            raise WorktreeError(
                f"git worktree remove failed for {path}: {(proc.stderr or '').strip()}"
            )
        logger.info(f"[worktree] Removed {path}")
