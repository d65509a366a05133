"""Fetch remote collections and replace the matching slice of the cache.

Every sync kind is one :class:`SyncStrategy`: a page lister plus the cache
operation that swaps in the fetched snapshot. A fetch that fails or is
cancelled never reaches the store, so the previous snapshot stays intact.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from ghub_desk.errors import (
    ConfigurationInvalid,
    GhubDeskError,
    InvalidFormat,
    MissingTarget,
    OperationCancelled,
    RemoteCallFailed,
)
from ghub_desk.github.client import GitHubClient
from ghub_desk.github.models import User
from ghub_desk.store.cache import CacheStore
from ghub_desk.sync.pagination import (
    DEFAULT_INTERVAL,
    ListPage,
    ProgressReporter,
    fetch_all,
    throttle,
)
from ghub_desk.validate import parse_team_users_path, validate_repo_name, validate_team_slug

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncKind(str, Enum):
    USERS = "users"
    DETAIL_USERS = "detail-users"
    TEAMS = "teams"
    REPOS = "repos"
    OUTSIDE_USERS = "outside-users"
    TOKEN_PERMISSION = "token-permission"
    TEAM_USER = "team-user"
    REPOS_USERS = "repos-users"
    REPOS_TEAMS = "repos-teams"
    ALL_TEAMS_USERS = "all-teams-users"
    ALL_REPOS_USERS = "all-repos-users"
    ALL_REPOS_TEAMS = "all-repos-teams"

    @classmethod
    def parse(cls, value: str | SyncKind) -> SyncKind:
        try:
            return cls(value)
        except ValueError:
            names = ", ".join(k.value for k in cls)
            raise InvalidFormat(
                "fetch target", str(value), "target", f"expected one of: {names}"
            ) from None


SCOPED_KINDS = frozenset({SyncKind.TEAM_USER, SyncKind.REPOS_USERS, SyncKind.REPOS_TEAMS})

# Aggregate kind -> scoped kind it runs for every cached parent key.
AGGREGATES: dict[SyncKind, SyncKind] = {
    SyncKind.ALL_TEAMS_USERS: SyncKind.TEAM_USER,
    SyncKind.ALL_REPOS_USERS: SyncKind.REPOS_USERS,
    SyncKind.ALL_REPOS_TEAMS: SyncKind.REPOS_TEAMS,
}


def normalize_scope(kind: SyncKind, scope: str | None) -> str:
    """Validate the parent key of a scoped sync: a team slug or a repository name.

    Team scopes may also be given as ``{slug}/users``.
    """

    if scope is None or not scope.strip():
        raise MissingTarget(f"{kind.value} requires a team slug or repository name")
    if kind is SyncKind.TEAM_USER:
        if "/" in scope:
            return parse_team_users_path(scope)
        return validate_team_slug(scope)
    return validate_repo_name(scope)


@dataclass(frozen=True, slots=True)
class SyncStrategy(Generic[T]):
    """How to list one collection and how to store it."""

    endpoint: str
    list_page: ListPage[T]
    replace: Callable[[CacheStore, list[T]], int]


@dataclass(frozen=True, slots=True)
class SyncResult:
    kind: SyncKind
    scope: str | None = None
    items: list[Any] = field(default_factory=list)
    stored: bool = False

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class AggregateSyncResult:
    """Outcome of a scoped sync repeated over every cached parent key."""

    kind: SyncKind
    succeeded: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return sum(self.succeeded.values())

    def summary(self) -> str:
        return f"{self.kind.value}: {len(self.succeeded)} succeeded, {len(self.failed)} failed"


class Reconciler:
    """Run syncs against one GitHub organization and one cache store."""

    def __init__(
        self,
        client: GitHubClient,
        store: CacheStore | None = None,
        *,
        interval: float = DEFAULT_INTERVAL,
        cancel: threading.Event | None = None,
        progress: ProgressReporter | None = None,
        log: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._store = store
        self._interval = interval
        self._cancel = cancel
        self._progress = progress
        self._log = log or logger
        self._sleep = sleep

    @property
    def store(self) -> CacheStore | None:
        return self._store

    def sync(
        self, kind: str | SyncKind, scope: str | None = None, *, store: bool = True
    ) -> SyncResult | AggregateSyncResult:
        """Fetch ``kind`` (optionally limited to ``scope``) and, if ``store``, cache it.

        Raises:
            InvalidFormat: unknown kind, or a scope that fails its grammar.
            MissingTarget: a scoped kind was requested without a scope.
            FetchError: the fetch failed; nothing was written.
            StoreFailed: the cache transaction could not commit.
        """

        sync_kind = SyncKind.parse(kind)
        if sync_kind in AGGREGATES:
            return self._sync_all(sync_kind, store=store)
        if sync_kind in SCOPED_KINDS:
            return self._sync_scoped(sync_kind, scope, store=store)
        if sync_kind is SyncKind.TOKEN_PERMISSION:
            return self._sync_token_permission(store=store)
        if sync_kind is SyncKind.DETAIL_USERS:
            return self._sync_detail_users(store=store)

        return self._run(sync_kind, None, self._collection_strategy(sync_kind), store=store)

    # Strategies

    def _collection_strategy(self, kind: SyncKind) -> SyncStrategy[Any]:
        c = self._client
        if kind is SyncKind.USERS:
            return SyncStrategy("members", c.list_org_members, CacheStore.replace_users)
        if kind is SyncKind.TEAMS:
            return SyncStrategy("teams", c.list_teams, CacheStore.replace_teams)
        if kind is SyncKind.REPOS:
            return SyncStrategy("repos", c.list_repositories, CacheStore.replace_repositories)
        if kind is SyncKind.OUTSIDE_USERS:
            return SyncStrategy(
                "outside_collaborators",
                c.list_outside_collaborators,
                CacheStore.replace_outside_users,
            )
        raise InvalidFormat("fetch target", kind.value, "target", "not a collection")

    def _scoped_strategy(
        self, kind: SyncKind, key: str, team_id: int | None
    ) -> SyncStrategy[Any]:
        c = self._client
        if kind is SyncKind.TEAM_USER:
            return SyncStrategy(
                f"teams/{key}/members",
                lambda token: c.list_team_members(key, token),
                lambda cache, items: cache.replace_team_members(key, team_id or 0, items),
            )
        if kind is SyncKind.REPOS_USERS:
            return SyncStrategy(
                f"repos/{key}/collaborators",
                lambda token: c.list_repo_collaborators(key, token),
                lambda cache, items: cache.replace_repo_collaborators(key, items),
            )
        return SyncStrategy(
            f"repos/{key}/teams",
            lambda token: c.list_repo_teams(key, token),
            lambda cache, items: cache.replace_repo_teams(key, items),
        )

    # Runners

    def _require_store(self, kind: SyncKind) -> CacheStore:
        if self._store is None:
            raise ConfigurationInvalid(f"a cache store is required to store {kind.value}")
        return self._store

    def _run(
        self, kind: SyncKind, scope: str | None, strategy: SyncStrategy[Any], *, store: bool
    ) -> SyncResult:
        cache = self._require_store(kind) if store else None
        metadata = {"kind": kind.value}
        if scope:
            metadata["scope"] = scope

        fetched = fetch_all(
            strategy.list_page,
            endpoint=strategy.endpoint,
            metadata=metadata,
            interval=self._interval,
            cancel=self._cancel,
            progress=self._progress,
            log=self._log,
            sleep=self._sleep,
        )
        if cache is None:
            return SyncResult(kind, scope, fetched.items, stored=False)

        stored = strategy.replace(cache, fetched.items)
        self._log.info("%d %s stored", stored, kind.value, extra=metadata)
        return SyncResult(kind, scope, fetched.items, stored=True)

    def _sync_scoped(self, kind: SyncKind, scope: str | None, *, store: bool) -> SyncResult:
        key = normalize_scope(kind, scope)

        team_id = None
        if kind is SyncKind.TEAM_USER and store:
            team_id = self._resolve_team_id(key)
        return self._run(kind, key, self._scoped_strategy(kind, key, team_id), store=store)

    def _resolve_team_id(self, slug: str) -> int:
        cache = self._require_store(SyncKind.TEAM_USER)
        team_id = cache.team_id(slug)
        if team_id is not None:
            return team_id
        self._log.debug("Team not cached; looking it up", extra={"team": slug})
        return self._client.get_team(slug).id

    def _parent_keys(self, kind: SyncKind) -> list[str]:
        cache = self._require_store(kind)
        if AGGREGATES[kind] is SyncKind.TEAM_USER:
            keys = cache.team_slugs()
        else:
            keys = cache.repository_names()
        return list(dict.fromkeys(k.strip() for k in keys if k and k.strip()))

    def _pause(self, endpoint: str) -> None:
        if not throttle(self._interval, cancel=self._cancel, sleep=self._sleep):
            raise OperationCancelled(f"{endpoint} cancelled", endpoint=endpoint)

    def _sync_all(self, kind: SyncKind, *, store: bool) -> AggregateSyncResult:
        scoped = AGGREGATES[kind]
        keys = self._parent_keys(kind)
        if not keys:
            self._log.warning(
                "No cached parent keys; run the parent sync first", extra={"kind": kind.value}
            )

        result = AggregateSyncResult(kind)
        for i, key in enumerate(keys):
            if i:
                self._pause(kind.value)
            try:
                outcome = self._sync_scoped(scoped, key, store=store)
            except OperationCancelled:
                raise
            except GhubDeskError as e:
                self._log.error(
                    "Scoped sync failed; continuing",
                    extra={"kind": scoped.value, "scope": key, "error": str(e)},
                )
                result.failed[key] = str(e)
                continue
            result.succeeded[key] = outcome.count

        self._log.info(result.summary(), extra={"kind": kind.value})
        return result

    def _sync_detail_users(self, *, store: bool) -> SyncResult:
        kind = SyncKind.DETAIL_USERS
        cache = self._require_store(kind) if store else None
        members = fetch_all(
            self._client.list_org_members,
            endpoint="members",
            metadata={"kind": kind.value},
            interval=self._interval,
            cancel=self._cancel,
            progress=self._progress,
            log=self._log,
            sleep=self._sleep,
        )

        detailed: list[User] = []
        for i, member in enumerate(members.items):
            if i:
                self._pause("users")
            try:
                detailed.append(self._client.get_user(member.login))
            except RemoteCallFailed as e:
                self._log.warning(
                    "Profile lookup failed; keeping member record",
                    extra={"user": member.login, "error": str(e)},
                )
                detailed.append(member)
            if (i + 1) % 10 == 0:
                self._log.info("%d/%d user profiles fetched", i + 1, members.count)

        if cache is None:
            return SyncResult(kind, None, detailed, stored=False)
        stored = cache.replace_users(detailed)
        self._log.info("%d %s stored", stored, kind.value)
        return SyncResult(kind, None, detailed, stored=True)

    def _sync_token_permission(self, *, store: bool) -> SyncResult:
        kind = SyncKind.TOKEN_PERMISSION
        cache = self._require_store(kind) if store else None
        if self._cancel is not None and self._cancel.is_set():
            raise OperationCancelled("token permission check cancelled", endpoint="user")
        try:
            permission = self._client.whoami()
        except RemoteCallFailed as e:
            e.endpoint = e.endpoint or "user"
            raise
        if cache is None:
            return SyncResult(kind, None, [permission], stored=False)
        cache.replace_token_permission(permission)
        return SyncResult(kind, None, [permission], stored=True)
