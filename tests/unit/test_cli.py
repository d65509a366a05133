"""Unit tests for the command line entrypoint."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest
from fakes import FakeGitHub

from ghub_desk import cli
from ghub_desk.github.client import GitHubClient
from ghub_desk.github.models import AuditEntry
from ghub_desk.store.cache import CacheStore


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for name in ("GHUB_DESK_ORGANIZATION", "GHUB_DESK_GITHUB_TOKEN", "GHUB_DESK_DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "config.yaml"
    path.write_text(
        "organization: acme\n"
        "github_token: ghp_1234567890abcd\n"
        "database_path: cache.db\n"
        "interval: 0\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def client_builds(monkeypatch: pytest.MonkeyPatch, fake_github: FakeGitHub) -> list[str]:
    builds: list[str] = []

    def from_settings(settings: object) -> FakeGitHub:
        builds.append("built")
        return fake_github

    monkeypatch.setattr(GitHubClient, "from_settings", staticmethod(from_settings))
    return builds


def _run(config: Path, *argv: str) -> int:
    return cli.main(["-c", str(config), *argv])


def test_pull_then_view_json(
    config_file: Path, client_builds: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(config_file, "pull", "--users") == cli.EXIT_OK
    capsys.readouterr()

    assert _run(config_file, "view", "--users", "--format", "json") == cli.EXIT_OK

    rows = json.loads(capsys.readouterr().out)
    assert [r["login"] for r in rows] == ["alice", "bob", "carol"]


def test_pull_scoped_team_path(
    config_file: Path, client_builds: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(config_file, "pull", "--teams") == cli.EXIT_OK
    assert _run(config_file, "pull", "--team-user", "alpha/users") == cli.EXIT_OK
    capsys.readouterr()

    assert _run(config_file, "view", "--user-teams", "bob") == cli.EXIT_OK

    out = capsys.readouterr().out
    assert "alpha" in out
    assert "beta" not in out


def test_pull_no_store_prints_items(
    config_file: Path,
    client_builds: list[str],
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(config_file, "pull", "--repos", "--no-store", "--format", "json") == cli.EXIT_OK

    items = json.loads(capsys.readouterr().out)
    assert [r["name"] for r in items] == ["repo-one", "repo-two"]
    assert not (tmp_path / "cache.db").exists()


def test_aggregate_failure_exits_with_remote_code(
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _run(config_file, "pull", "--teams")
    fake_github.failing.add("teams/beta/members")

    assert _run(config_file, "pull", "--all-teams-users") == cli.EXIT_REMOTE

    out = capsys.readouterr().out
    assert "all-teams-users: 1 succeeded, 1 failed" in out
    assert "failed beta" in out


def test_remote_failure_exit_code(
    config_file: Path, client_builds: list[str], fake_github: FakeGitHub
) -> None:
    fake_github.failing.add("members")

    assert _run(config_file, "pull", "--users") == cli.EXIT_REMOTE
    assert fake_github.closed is True


def test_remove_is_dry_run_by_default(
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(config_file, "remove", "--team-user", "alpha/bob") == cli.EXIT_OK

    assert capsys.readouterr().out.strip() == "DRYRUN: would remove user bob from team alpha"
    assert client_builds == []
    assert fake_github.mutations == []


def test_add_exec_changes_membership(
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(config_file, "add", "--team-user", "beta/bob", "--exec") == cli.EXIT_OK

    assert "add user bob to team beta: done" in capsys.readouterr().out
    assert fake_github.mutations == [("add_team_member", "beta", "bob")]


@pytest.mark.parametrize(
    "argv",
    [
        ("remove", "--team", "alpha", "--user", "bob"),
        ("remove",),
        ("add", "--team-user", "alpha/alice", "--permission", "pull"),
        ("add", "--outside-user", "repo-one/bob", "--permission", "owner"),
        ("remove", "--team-user", "Alpha/bob"),
        ("auditlogs",),
        ("auditlogs", "--user", "alice", "--created", "2025-02-01..2025-01-01"),
        ("view", "--team-user", "bad/members"),
    ],
)
def test_invalid_input_exit_code(
    config_file: Path, client_builds: list[str], argv: tuple[str, ...]
) -> None:
    assert _run(config_file, *argv) == cli.EXIT_INVALID
    assert client_builds == []


def test_missing_target_flag_is_a_usage_error(config_file: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        _run(config_file, "pull")
    assert exc.value.code == 2


def test_missing_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-c", str(tmp_path / "nope.yaml"), "view", "--users"]) == cli.EXIT_CONFIG
    assert "Configuration error" in capsys.readouterr().err


def test_config_command_masks_token(
    config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(config_file, "config") == cli.EXIT_OK

    out = capsys.readouterr().out
    assert "organization: acme" in out
    assert "ghp_1234567890abcd" not in out
    assert "abcd" in out


def test_init_creates_cache(config_file: Path, tmp_path: Path) -> None:
    assert _run(config_file, "init") == cli.EXIT_OK
    assert (tmp_path / "cache.db").exists()


def test_auditlogs_table(
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
    capsys: pytest.CaptureFixture[str],
) -> None:
    fake_github.audit_entries = [AuditEntry(action="org.remove_member", actor="alice", user="bob")]

    assert _run(config_file, "auditlogs", "--user", "alice") == cli.EXIT_OK

    out = capsys.readouterr().out
    assert out.splitlines()[0].startswith("CREATED_AT")
    assert "org.remove_member" in out


def test_aggregate_pull_without_storing_reads_cached_parents(
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(config_file, "pull", "--teams") == cli.EXIT_OK
    capsys.readouterr()

    assert _run(config_file, "pull", "--all-teams-users", "--no-store") == cli.EXIT_OK

    assert "all-teams-users: 2 succeeded, 0 failed" in capsys.readouterr().out
    assert ("teams/alpha/members", None) in fake_github.requests
    store = CacheStore(tmp_path / "cache.db")
    try:
        assert store.all_team_members() == []
    finally:
        store.close()


def test_exec_observes_interrupt(
    monkeypatch: pytest.MonkeyPatch,
    config_file: Path,
    client_builds: list[str],
    fake_github: FakeGitHub,
) -> None:
    @contextmanager
    def interrupted() -> Iterator[threading.Event]:
        cancel = threading.Event()
        cancel.set()
        yield cancel

    monkeypatch.setattr(cli, "_cancel_on_interrupt", interrupted)

    assert _run(config_file, "remove", "--team-user", "alpha/bob", "--exec") == cli.EXIT_INTERRUPTED
    assert fake_github.mutations == []
    assert fake_github.closed is True


def test_token_permission_view(
    config_file: Path, client_builds: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(config_file, "view", "--token-permission", "--format", "json") == cli.EXIT_OK
    assert json.loads(capsys.readouterr().out) == []

    assert _run(config_file, "pull", "--token-permission") == cli.EXIT_OK
    capsys.readouterr()
    assert _run(config_file, "view", "--token-permission", "--format", "json") == cli.EXIT_OK

    rows = json.loads(capsys.readouterr().out)
    assert [r["oauth_scopes"] for r in rows] == ["read:org, repo"]
