"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import FakeGitHub, make_repo, make_team, make_user

from ghub_desk.github.models import Collaborator
from ghub_desk.store.cache import CacheStore
from ghub_desk.sync.reconcile import Reconciler


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Provide an organization with three members, two teams and two repositories."""

    gh = FakeGitHub()
    alice, bob, carol = make_user(1, "alice"), make_user(2, "bob"), make_user(3, "carol")
    gh.members = [alice, bob, carol]
    gh.outside = [make_user(10, "outsider")]
    gh.teams = [make_team(100, "alpha"), make_team(200, "beta")]
    gh.repos = [make_repo(1000, "repo-one"), make_repo(2000, "repo-two")]
    gh.team_members = {"alpha": [alice, bob], "beta": [carol]}
    gh.repo_collaborators = {
        "repo-one": [Collaborator(id=1, login="alice", permission="admin")],
        "repo-two": [Collaborator(id=10, login="outsider", permission="pull")],
    }
    gh.repo_teams = {
        "repo-one": [make_team(100, "alpha", permission="push")],
        "repo-two": [make_team(200, "beta", permission="pull")],
    }
    return gh


@pytest.fixture
def cache(tmp_path: Path) -> Iterator[CacheStore]:
    """Provide a temporary SQLite cache."""

    store = CacheStore(tmp_path / "cache.db")
    yield store
    store.close()


@pytest.fixture
def reconciler(fake_github: FakeGitHub, cache: CacheStore) -> Reconciler:
    return Reconciler(fake_github, cache, interval=0, sleep=lambda _s: None)
