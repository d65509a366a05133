"""Read-side targets over the cache, shared by the CLI and the REST front end."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ghub_desk.errors import InvalidFormat, MissingTarget
from ghub_desk.store.cache import CacheStore
from ghub_desk.validate import (
    parse_team_users_path,
    validate_repo_name,
    validate_team_slug,
    validate_user_login,
)


@dataclass(frozen=True, slots=True)
class ViewTarget:
    name: str
    columns: tuple[str, ...]
    query: Callable[[CacheStore, str | None], list[dict[str, Any]]]
    scope: Callable[[str], str] | None = None


def _team_scope(value: str) -> str:
    return parse_team_users_path(value) if "/" in value else validate_team_slug(value)


def _token_permission_rows(store: CacheStore, _scope: str | None) -> list[dict[str, Any]]:
    row = store.token_permission()
    return [row] if row else []


_USER_COLUMNS = ("id", "login", "name", "email", "company", "location")

VIEW_TARGETS: dict[str, ViewTarget] = {
    t.name: t
    for t in (
        ViewTarget("users", _USER_COLUMNS, lambda s, _: s.list_users()),
        ViewTarget("detail-users", _USER_COLUMNS + ("created_at",), lambda s, _: s.list_users()),
        ViewTarget(
            "teams", ("id", "slug", "name", "privacy", "description"), lambda s, _: s.list_teams()
        ),
        ViewTarget(
            "repos",
            ("id", "name", "full_name", "private", "language", "stargazers_count"),
            lambda s, _: s.list_repositories(),
        ),
        ViewTarget("outside-users", _USER_COLUMNS, lambda s, _: s.list_outside_users()),
        ViewTarget(
            "token-permission",
            (
                "oauth_scopes",
                "accepted_github_permissions",
                "rate_limit",
                "rate_remaining",
                "rate_reset",
            ),
            _token_permission_rows,
        ),
        ViewTarget(
            "team-user",
            ("team_slug", "user_id", "user_login", "role"),
            lambda s, key: s.team_members(key or ""),
            _team_scope,
        ),
        ViewTarget(
            "repos-users",
            ("repo_name", "user_id", "user_login", "permission"),
            lambda s, key: s.repo_collaborators(key or ""),
            validate_repo_name,
        ),
        ViewTarget(
            "repos-teams",
            ("repo_name", "team_slug", "team_name", "permission", "privacy"),
            lambda s, key: s.repo_teams(key or ""),
            validate_repo_name,
        ),
        ViewTarget(
            "user-repos",
            ("repository", "permission", "access_from"),
            lambda s, key: s.user_repositories(key or ""),
            validate_user_login,
        ),
        ViewTarget(
            "user-teams",
            ("team_slug", "team_name", "role"),
            lambda s, key: s.user_teams(key or ""),
            validate_user_login,
        ),
        ViewTarget(
            "all-teams-users",
            ("team_slug", "team_name", "user_login", "user_name", "role"),
            lambda s, _: s.all_team_members(),
        ),
        ViewTarget(
            "all-repos-users",
            ("repo_name", "user_login", "permission"),
            lambda s, _: s.all_repo_collaborators(),
        ),
        ViewTarget(
            "all-repos-teams",
            ("repo_name", "team_slug", "team_name", "permission"),
            lambda s, _: s.all_repo_teams(),
        ),
    )
}


def view_rows(
    store: CacheStore, target: str, scope: str | None = None
) -> tuple[ViewTarget, list[dict[str, Any]]]:
    """Validate ``target``/``scope`` and read the matching cached rows."""

    view = VIEW_TARGETS.get(target.strip())
    if view is None:
        raise InvalidFormat(
            "view target", target, "target", f"expected one of: {', '.join(VIEW_TARGETS)}"
        )
    key: str | None = None
    if view.scope is not None:
        if scope is None or not scope.strip():
            raise MissingTarget(f"{view.name} requires a value")
        key = view.scope(scope)
    return view, view.query(store, key)
