"""Unit tests for the SQLite cache."""

from __future__ import annotations

from pathlib import Path

import pytest

from ghub_desk.errors import StoreFailed
from ghub_desk.github.models import Collaborator, Team, TokenPermission, User
from ghub_desk.store.cache import CacheStore

from fakes import make_repo, make_team, make_user


def test_replace_users_is_a_full_snapshot(cache: CacheStore) -> None:
    cache.replace_users([make_user(1, "alice"), make_user(2, "bob")])
    cache.replace_users([make_user(2, "bob", name="Bob")])

    rows = cache.list_users()
    assert [r["login"] for r in rows] == ["bob"]
    assert rows[0]["name"] == "Bob"
    assert rows[0]["synced_at"] is not None


def test_replace_keeps_last_copy_of_duplicate_ids(cache: CacheStore) -> None:
    count = cache.replace_users(
        [make_user(1, "alice", name="old"), make_user(1, "alice", name="new")]
    )

    assert count == 1
    assert cache.list_users()[0]["name"] == "new"


def test_failed_replace_leaves_previous_snapshot(cache: CacheStore) -> None:
    cache.replace_users([make_user(1, "alice"), make_user(2, "bob")])

    # Same login under two ids violates the unique login column.
    with pytest.raises(StoreFailed):
        cache.replace_users([make_user(3, "carol"), make_user(4, "carol")])

    assert [r["login"] for r in cache.list_users()] == ["alice", "bob"]


def test_scoped_replace_only_touches_its_key(cache: CacheStore) -> None:
    cache.replace_team_members("alpha", 100, [make_user(1, "alice"), make_user(2, "bob")])
    cache.replace_team_members("beta", 200, [make_user(3, "carol")])

    cache.replace_team_members("alpha", 100, [make_user(2, "bob")])

    assert [r["user_login"] for r in cache.team_members("alpha")] == ["bob"]
    assert [r["user_login"] for r in cache.team_members("beta")] == ["carol"]


def test_scoped_replace_with_empty_list_clears_key(cache: CacheStore) -> None:
    cache.replace_repo_collaborators("repo-one", [Collaborator(id=1, login="alice")])
    cache.replace_repo_collaborators("repo-two", [Collaborator(id=2, login="bob")])

    assert cache.replace_repo_collaborators("repo-one", []) == 0

    assert cache.repo_collaborators("repo-one") == []
    assert len(cache.repo_collaborators("repo-two")) == 1


def test_team_lookups(cache: CacheStore) -> None:
    cache.replace_teams([make_team(200, "beta"), make_team(100, "alpha")])

    assert cache.team_slugs() == ["alpha", "beta"]
    assert cache.team_id("beta") == 200
    assert cache.team_id("gamma") is None


def test_repository_names_sorted(cache: CacheStore) -> None:
    cache.replace_repositories([make_repo(2, "zeta"), make_repo(1, "alpha", private=True)])

    assert cache.repository_names() == ["alpha", "zeta"]
    assert cache.list_repositories()[0]["private"] is True


def test_token_permission_round_trip(cache: CacheStore) -> None:
    assert cache.token_permission() is None

    cache.replace_token_permission(TokenPermission(oauth_scopes="repo", rate_limit=5000))
    cache.replace_token_permission(TokenPermission(oauth_scopes="read:org", rate_limit=5000))

    row = cache.token_permission()
    assert row is not None
    assert row["oauth_scopes"] == "read:org"
    assert row["rate_limit"] == 5000


def test_user_repositories_merges_direct_and_team_access(cache: CacheStore) -> None:
    cache.replace_teams([make_team(100, "alpha"), make_team(200, "beta")])
    cache.replace_team_members("alpha", 100, [make_user(1, "alice")])
    cache.replace_team_members("beta", 200, [make_user(1, "alice")])
    cache.replace_repo_collaborators(
        "repo-one", [Collaborator(id=1, login="alice", permission="pull")]
    )
    cache.replace_repo_teams("repo-one", [Team(id=100, slug="alpha", permission="admin")])
    cache.replace_repo_teams("repo-two", [Team(id=200, slug="beta", permission="push")])

    rows = cache.user_repositories("alice")

    assert rows == [
        {"repository": "repo-one", "access_from": ["direct", "team:alpha"], "permission": "admin"},
        {"repository": "repo-two", "access_from": ["team:beta"], "permission": "push"},
    ]
    assert cache.user_repositories("nobody") == []


def test_joined_views(cache: CacheStore) -> None:
    cache.replace_users([make_user(1, "alice", name="Alice")])
    cache.replace_teams([make_team(100, "alpha")])
    cache.replace_repositories([make_repo(1000, "repo-one")])
    cache.replace_team_members("alpha", 100, [make_user(1, "alice")])
    cache.replace_repo_collaborators(
        "repo-one", [Collaborator(id=1, login="alice", permission="push")]
    )

    assert cache.all_team_members() == [
        {
            "team_slug": "alpha",
            "team_name": "Alpha",
            "user_login": "alice",
            "user_name": "Alice",
            "role": "member",
        }
    ]
    assert cache.all_repo_collaborators() == [
        {
            "repo_name": "repo-one",
            "full_name": "acme/repo-one",
            "user_login": "alice",
            "permission": "push",
        }
    ]
    assert cache.user_teams("alice") == [
        {"team_slug": "alpha", "team_name": "Alpha", "role": "member"}
    ]


def test_forget_team_drops_links(cache: CacheStore) -> None:
    cache.replace_team_members("alpha", 100, [make_user(1, "alice")])
    cache.replace_repo_teams("repo-one", [Team(id=100, slug="alpha", permission="push")])
    cache.replace_team_members("beta", 200, [make_user(2, "bob")])

    cache.forget_team("alpha")

    assert cache.team_members("alpha") == []
    assert cache.repo_teams("repo-one") == []
    assert len(cache.team_members("beta")) == 1


def test_forget_user_memberships(cache: CacheStore) -> None:
    cache.replace_team_members("alpha", 100, [make_user(1, "alice"), make_user(2, "bob")])

    cache.forget_user_memberships("alice")

    assert [r["user_login"] for r in cache.team_members("alpha")] == ["bob"]


def test_cache_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "persist.db"
    first = CacheStore(path)
    first.replace_users([make_user(1, "alice")])
    first.close()

    second = CacheStore(path)
    assert [r["login"] for r in second.list_users()] == ["alice"]
    second.close()


def test_in_memory_cache() -> None:
    store = CacheStore(":memory:")
    store.replace_teams([make_team(1, "alpha")])
    assert store.team_slugs() == ["alpha"]
    store.close()


def test_user_model_ignores_unknown_fields() -> None:
    user = User.model_validate({"id": 5, "login": "eve", "site_admin": False, "type": "User"})
    assert user.login == "eve"
