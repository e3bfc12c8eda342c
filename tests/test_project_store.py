from __future__ import annotations

import json
from pathlib import Path

import pytest

from amf.session.models import Feature, FeatureMode, FeatureStatus, Project, SessionKind
from amf.session.project_store import (
    ParseError,
    ProjectStore,
    StoreWriteError,
    UnknownVersionError,
)


def _v0_record(name: str, repo: str, created_at: str, **extra) -> dict:
    record = {
        "name": name,
        "repo": repo,
        "branch": extra.pop("branch", name),
        "workdir": extra.pop("workdir", repo),
        "is_worktree": extra.pop("is_worktree", False),
        "tmux_session": f"amf-{name}",
        "status": extra.pop("status", "stopped"),
        "created_at": created_at,
        "last_accessed": created_at,
    }
    record.update(extra)
    return record


V0_DOC = {
    "projects": [
        _v0_record("login", "/work/app", "2024-03-02T10:00:00+00:00", claude_session_id="abc"),
        _v0_record("api", "/work/svc", "2024-03-01T09:00:00+00:00", status="idle"),
        _v0_record(
            "signup",
            "/work/app",
            "2024-03-01T08:00:00+00:00",
            branch=None,
            workdir="/work/app/.worktrees/signup",
            is_worktree=True,
        ),
        _v0_record("docs", "/other/app", "2024-03-05T08:00:00+00:00"),
    ]
}

V1_DOC = {
    "version": 1,
    "projects": [
        {
            "id": "p1",
            "name": "app",
            "repo": "/work/app",
            "collapsed": False,
            "created_at": "2024-03-01T08:00:00+00:00",
            "features": [
                {
                    "id": "f1",
                    "name": "login",
                    "branch": "login",
                    "workdir": "/work/app",
                    "is_worktree": False,
                    "tmux_session": "amf-login",
                    "claude_session_id": "resume-me",
                    "status": "idle",
                    "created_at": "2024-03-02T10:00:00+00:00",
                    "last_accessed": "2024-03-03T10:00:00+00:00",
                }
            ],
        }
    ],
}


def _write(path: Path, doc) -> Path:
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def test_missing_file_gives_empty_store(tmp_path: Path) -> None:
    store = ProjectStore.load(tmp_path / "nope.json")

    assert store.projects == []
    assert store.version == 2


def test_v0_groups_records_by_repo(tmp_path: Path) -> None:
    path = _write(tmp_path / "projects.json", V0_DOC)

    store = ProjectStore.load(path)

    assert [p.name for p in store.projects] == ["app", "svc", "app-2"]
    assert sum(len(p.features) for p in store.projects) == len(V0_DOC["projects"])
    app = store.find_project("app")
    assert app is not None
    assert app.repo == "/work/app"
    assert [f.name for f in app.features] == ["login", "signup"]
    assert app.created_at == "2024-03-01T08:00:00+00:00"
    assert app.is_git is True


def test_v0_preserves_feature_fields(tmp_path: Path) -> None:
    store = ProjectStore.load(_write(tmp_path / "projects.json", V0_DOC))

    login = store.find_feature("app", "login")
    signup = store.find_feature("app", "signup")
    api = store.find_feature("svc", "api")
    assert login is not None and signup is not None and api is not None
    assert login.tmux_session == "amf-login"
    assert login.sessions[0].resume_token == "abc"
    assert signup.branch == "main"
    assert signup.is_worktree is True
    assert signup.workdir == "/work/app/.worktrees/signup"
    assert api.status is FeatureStatus.IDLE
    assert login.created_at == "2024-03-02T10:00:00+00:00"


def test_v0_file_is_rewritten_as_latest(tmp_path: Path) -> None:
    path = _write(tmp_path / "projects.json", V0_DOC)

    ProjectStore.load(path)

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["version"] == 2
    assert len(on_disk["projects"]) == 3


def test_v1_gains_legacy_sessions(tmp_path: Path) -> None:
    store = ProjectStore.load(_write(tmp_path / "projects.json", V1_DOC))

    feature = store.find_feature("app", "login")
    assert feature is not None
    agent, terminal = feature.sessions
    assert (agent.kind, agent.window, agent.label) == (SessionKind.AGENT, "claude", "Claude 1")
    assert agent.resume_token == "resume-me"
    assert (terminal.kind, terminal.window, terminal.label) == (SessionKind.TERMINAL, "terminal", "Terminal 1")
    assert terminal.resume_token is None
    assert feature.mode is FeatureMode.VIBELESS
    assert feature.collapsed is False
    assert feature.last_accessed == "2024-03-03T10:00:00+00:00"
    assert store.projects[0].is_git is True
    assert "claude_session_id" not in json.loads((tmp_path / "projects.json").read_text())["projects"][0]["features"][0]


@pytest.mark.parametrize("doc", [V0_DOC, V1_DOC])
def test_load_save_reload_is_stable(tmp_path: Path, doc: dict) -> None:
    path = _write(tmp_path / "projects.json", doc)
    first = ProjectStore.load(path)

    first.save(path)
    second = ProjectStore.load(path)

    assert second.to_dict() == first.to_dict()


def test_v2_round_trip_keeps_timestamps(tmp_path: Path) -> None:
    path = _write(tmp_path / "projects.json", V1_DOC)
    migrated = ProjectStore.load(path).to_dict()

    reloaded = ProjectStore.load(path)

    assert reloaded.to_dict() == migrated
    assert reloaded.projects[0].features[0].created_at == "2024-03-02T10:00:00+00:00"


@pytest.mark.parametrize(
    "content",
    [
        b"{not json",
        json.dumps([1, 2]).encode(),
        json.dumps({"version": "2", "projects": []}).encode(),
        json.dumps({"version": -1, "projects": []}).encode(),
        json.dumps({"version": True, "projects": []}).encode(),
        json.dumps({"version": 2, "projects": [{"name": "x"}]}).encode(),
        json.dumps({"version": 2}).encode(),
        json.dumps({"projects": [{"name": "legacy"}]}).encode(),
        b'{"version": 2, "projects": [\xff]}',
    ],
)
def test_malformed_documents_raise_parse_error(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "projects.json"
    path.write_bytes(content)

    with pytest.raises(ParseError):
        ProjectStore.load(path)


def test_newer_version_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "projects.json", {"version": 3, "projects": []})

    with pytest.raises(UnknownVersionError):
        ProjectStore.load(path)


def test_save_failure_raises_store_write_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(StoreWriteError):
        ProjectStore().save(blocker / "projects.json")


def test_save_writes_fixed_key_order(tmp_path: Path) -> None:
    store = ProjectStore.load(_write(tmp_path / "projects.json", V1_DOC))
    path = tmp_path / "out" / "projects.json"

    store.save(path)

    doc = json.loads(path.read_text(encoding="utf-8"))
    assert list(doc) == ["version", "projects"]
    assert list(doc["projects"][0]) == ["id", "name", "repo", "collapsed", "is_git", "features", "created_at"]
    assert list(doc["projects"][0]["features"][0])[:6] == [
        "id",
        "name",
        "branch",
        "workdir",
        "is_worktree",
        "tmux_session",
    ]


def test_sync_statuses(tmp_path: Path) -> None:
    store = ProjectStore.load(_write(tmp_path / "projects.json", V0_DOC))
    for _, feature in store.iter_features():
        feature.status = FeatureStatus.ACTIVE
    store.find_feature("app", "signup").status = FeatureStatus.STOPPED  # type: ignore[union-attr]

    changed = store.sync_statuses(["amf-login", "amf-signup"])

    statuses = {f.name: f.status for _, f in store.iter_features()}
    assert statuses == {
        "login": FeatureStatus.ACTIVE,
        "signup": FeatureStatus.IDLE,
        "api": FeatureStatus.STOPPED,
        "docs": FeatureStatus.STOPPED,
    }
    assert changed == 3


def test_mutation_helpers() -> None:
    store = ProjectStore.load(Path("/definitely/missing/projects.json"))

    store.add_project(Project(name="app", repo="/r"))
    assert store.add_feature("app", Feature("f", "f", "/r", False, "amf-f")) is True
    assert store.add_feature("nope", Feature("g", "g", "/r", False, "amf-g")) is False
    assert store.tracked_sessions() == {"amf-f"}
    assert store.remove_feature("app", "f") is not None
    assert store.remove_feature("app", "f") is None
    assert store.remove_project("app") is not None
    assert store.projects == []


def test_reconcile_login_scenario() -> None:
    feature = Feature("login", "login", "/r", False, "amf-login")
    store = ProjectStore(projects=[Project(name="app", repo="/r", features=[feature])])

    store.sync_statuses(["amf-login"])
    assert feature.status is FeatureStatus.IDLE

    store.sync_statuses([])
    assert feature.status is FeatureStatus.STOPPED
