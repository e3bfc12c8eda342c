from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from amf.runtime.worktree import (
    SETTINGS_RELPATH,
    NotAGitRepoError,
    WorktreeError,
    WorktreeInfo,
    WorktreeManager,
    merge_settings,
    parse_worktree_porcelain,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def test_parse_porcelain() -> None:
    text = (
        "worktree /repo\nHEAD abc\nbranch refs/heads/main\n\n"
        "worktree /repo/.worktrees/fix\nHEAD def\nbranch refs/heads/fix/login\n\n"
        "worktree /repo/.worktrees/detached\nHEAD 123\ndetached\n"
    )

    assert parse_worktree_porcelain(text) == [
        WorktreeInfo(Path("/repo"), "main"),
        WorktreeInfo(Path("/repo/.worktrees/fix"), "fix/login"),
        WorktreeInfo(Path("/repo/.worktrees/detached"), None),
    ]


def test_merge_settings_one_level_deep() -> None:
    src = {"permissions": {"allow": ["Bash"]}, "model": "opus", "env": {"A": "1"}}
    dest = {"permissions": {"deny": ["Write"]}, "model": "sonnet", "keep": True}

    merged = merge_settings(src, dest)

    assert merged == {
        "permissions": {"deny": ["Write"], "allow": ["Bash"]},
        "model": "opus",
        "keep": True,
        "env": {"A": "1"},
    }
    assert dest["permissions"] == {"deny": ["Write"]}


def test_worktree_path_flattens_slashes(tmp_path: Path) -> None:
    assert WorktreeManager().worktree_path(tmp_path, "fix/login") == tmp_path / ".worktrees" / "fix-login"


def test_git_failure_wraps_os_error(tmp_path: Path) -> None:
    def runner(argv, **kwargs):
        raise FileNotFoundError("git")

    manager = WorktreeManager(runner=runner)

    with pytest.raises(NotAGitRepoError):
        manager.repo_root(tmp_path)
    assert manager.current_branch(tmp_path) is None
    with pytest.raises(WorktreeError):
        manager.remove(tmp_path, tmp_path / "x")


def test_git_output_decodes_leniently(tmp_path: Path) -> None:
    seen: list[dict] = []

    def runner(argv, **kwargs):
        seen.append(kwargs)
        return subprocess.CompletedProcess(argv, 0, stdout="feat-�\n", stderr="")

    assert WorktreeManager(runner=runner).current_branch(tmp_path) == "feat-�"
    assert seen[0]["text"] is True
    assert seen[0]["errors"] == "replace"


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-b", "main")
    _git(repo, "-c", "user.email=dev@example.com", "-c", "user.name=dev", "commit", "--allow-empty", "-m", "init")
    return repo


@requires_git
def test_repo_root_and_branch(git_repo: Path, tmp_path: Path) -> None:
    manager = WorktreeManager()
    sub = git_repo / "src"
    sub.mkdir()

    assert manager.repo_root(sub).resolve() == git_repo.resolve()
    assert manager.current_branch(git_repo) == "main"
    with pytest.raises(NotAGitRepoError):
        manager.repo_root(tmp_path)


@requires_git
def test_create_list_remove(git_repo: Path) -> None:
    manager = WorktreeManager()

    path = manager.create(git_repo, "fix", "fix")

    assert path == git_repo / ".worktrees" / "fix"
    assert path.is_dir()
    assert manager.is_worktree(path) is True
    assert manager.is_worktree(git_repo) is False
    assert manager.branch_exists(git_repo, "fix") is True
    branches = {info.branch for info in manager.list(git_repo)}
    assert branches == {"main", "fix"}

    with pytest.raises(WorktreeError, match="already exists"):
        manager.create(git_repo, "fix", "other")

    manager.remove(git_repo, path)
    assert not path.exists()


@requires_git
def test_create_reuses_existing_branch(git_repo: Path) -> None:
    _git(git_repo, "branch", "existing")
    manager = WorktreeManager()

    path = manager.create(git_repo, "feat", "existing")

    assert manager.current_branch(path) == "existing"


@requires_git
def test_create_inherits_local_settings(git_repo: Path) -> None:
    settings = git_repo / SETTINGS_RELPATH
    settings.parent.mkdir()
    settings.write_text(json.dumps({"permissions": {"allow": ["Bash"]}}), encoding="utf-8")

    path = WorktreeManager().create(git_repo, "fix", "fix")

    copied = json.loads((path / SETTINGS_RELPATH).read_text(encoding="utf-8"))
    assert copied == {"permissions": {"allow": ["Bash"]}}


@requires_git
def test_create_survives_unreadable_local_settings(git_repo: Path) -> None:
    settings = git_repo / SETTINGS_RELPATH
    settings.parent.mkdir()
    settings.write_text("{not json", encoding="utf-8")
    manager = WorktreeManager()

    path = manager.create(git_repo, "fix", "fix")

    assert path.is_dir()
    assert manager.is_worktree(path) is True
    assert not (path / SETTINGS_RELPATH).exists()
