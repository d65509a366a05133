"""Plan and run membership changes against the organization.

A request is parsed and validated into a :class:`MutationIntent` before
anything touches the network. :meth:`MutationExecutor.run` then makes exactly
one decision: preview the change, or execute it and resync the affected cache
slice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ghub_desk.errors import (
    AmbiguousTarget,
    ConfigurationInvalid,
    GhubDeskError,
    InvalidFormat,
    MissingTarget,
    OperationCancelled,
    ValidationFailed,
)
from ghub_desk.github.client import GitHubClient
from ghub_desk.sync.reconcile import Reconciler, SyncKind, SyncResult
from ghub_desk.validate import (
    parse_repo_user_pair,
    parse_team_user_pair,
    validate_team_slug,
    validate_user_login,
)

logger = logging.getLogger(__name__)

PERMISSIONS = ("pull", "push", "admin")
PERMISSION_ALIASES = {"read": "pull", "write": "push"}


class MutationAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class MutationTarget(str, Enum):
    TEAM = "team"
    USER = "user"
    TEAM_USER = "team-user"
    OUTSIDE_USER = "outside-user"
    REPOS_USER = "repos-user"


class MutationState(str, Enum):
    PREVIEW = "preview"
    EXECUTED = "executed"


@dataclass(frozen=True, slots=True)
class MutationIntent:
    """A validated request. Names are already stripped and grammar-checked."""

    action: MutationAction
    target: MutationTarget
    team: str | None = None
    user: str | None = None
    repo: str | None = None
    permission: str | None = None

    def describe(self, organization: str) -> str:
        t = self.target
        if t is MutationTarget.TEAM:
            return f"remove team {self.team} from organization {organization}"
        if t is MutationTarget.USER:
            return f"remove user {self.user} from organization {organization}"
        if t is MutationTarget.TEAM_USER:
            if self.action is MutationAction.ADD:
                return f"add user {self.user} to team {self.team}"
            return f"remove user {self.user} from team {self.team}"
        if t is MutationTarget.OUTSIDE_USER:
            if self.action is MutationAction.ADD:
                level = self.permission or "default"
                return (
                    f"invite outside collaborator {self.user} to repository "
                    f"{organization}/{self.repo} with {level} permission"
                )
            return (
                f"remove outside collaborator {self.user} from repository "
                f"{organization}/{self.repo}"
            )
        return f"remove collaborator {self.user} from repository {organization}/{self.repo}"


@dataclass(frozen=True, slots=True)
class MutationResult:
    intent: MutationIntent
    state: MutationState
    message: str
    resync: SyncResult | None = None
    resync_error: str | None = None


def resolve_permission(value: str | None) -> str | None:
    """Map a permission flag to ``pull``, ``push`` or ``admin``."""

    if value is None or not value.strip():
        return None
    raw = value.strip()
    level = raw.lower()
    level = PERMISSION_ALIASES.get(level, level)
    if level not in PERMISSIONS:
        raise InvalidFormat(
            "permission", raw, "permission", "expected pull, push, admin, read or write"
        )
    return level


def _pick_one(targets: dict[MutationTarget, str | None]) -> tuple[MutationTarget, str]:
    supplied = {t: v for t, v in targets.items() if v is not None and v.strip()}
    flags = ", ".join(f"--{t.value}" for t in targets)
    if not supplied:
        raise MissingTarget(f"specify exactly one of {flags}")
    if len(supplied) > 1:
        given = ", ".join(f"--{t.value}" for t in supplied)
        raise AmbiguousTarget(f"only one target may be given, got {given}")
    return next(iter(supplied.items()))


def _intent(action: MutationAction, target: MutationTarget, value: str) -> MutationIntent:
    if target is MutationTarget.TEAM:
        return MutationIntent(action, target, team=validate_team_slug(value))
    if target is MutationTarget.USER:
        return MutationIntent(action, target, user=validate_user_login(value))
    if target is MutationTarget.TEAM_USER:
        team, user = parse_team_user_pair(value)
        return MutationIntent(action, target, team=team, user=user)
    repo, user = parse_repo_user_pair(value)
    return MutationIntent(action, target, repo=repo, user=user)


def plan_remove(
    *,
    team: str | None = None,
    user: str | None = None,
    team_user: str | None = None,
    outside_user: str | None = None,
    repos_user: str | None = None,
) -> MutationIntent:
    """Validate a remove request naming exactly one target."""

    target, value = _pick_one(
        {
            MutationTarget.TEAM: team,
            MutationTarget.USER: user,
            MutationTarget.TEAM_USER: team_user,
            MutationTarget.OUTSIDE_USER: outside_user,
            MutationTarget.REPOS_USER: repos_user,
        }
    )
    return _intent(MutationAction.REMOVE, target, value)


def plan_add(
    *,
    team_user: str | None = None,
    outside_user: str | None = None,
    permission: str | None = None,
) -> MutationIntent:
    """Validate an add request. ``permission`` only applies to outside collaborators."""

    target, value = _pick_one(
        {MutationTarget.TEAM_USER: team_user, MutationTarget.OUTSIDE_USER: outside_user}
    )
    level = resolve_permission(permission)
    if level is not None and target is not MutationTarget.OUTSIDE_USER:
        raise ValidationFailed("--permission can only be used with --outside-user")
    intent = _intent(MutationAction.ADD, target, value)
    if level is None:
        return intent
    return MutationIntent(
        intent.action, intent.target, repo=intent.repo, user=intent.user, permission=level
    )


def _apply(client: GitHubClient, intent: MutationIntent) -> None:
    team, user, repo = intent.team or "", intent.user or "", intent.repo or ""
    handlers: dict[tuple[MutationAction, MutationTarget], Callable[[], None]] = {
        (MutationAction.REMOVE, MutationTarget.TEAM): lambda: client.delete_team(team),
        (MutationAction.REMOVE, MutationTarget.USER): lambda: client.remove_org_member(user),
        (MutationAction.REMOVE, MutationTarget.TEAM_USER): (
            lambda: client.remove_team_member(team, user)
        ),
        (MutationAction.REMOVE, MutationTarget.OUTSIDE_USER): (
            lambda: client.remove_repo_collaborator(repo, user)
        ),
        (MutationAction.REMOVE, MutationTarget.REPOS_USER): (
            lambda: client.remove_repo_collaborator(repo, user)
        ),
        (MutationAction.ADD, MutationTarget.TEAM_USER): lambda: client.add_team_member(team, user),
        (MutationAction.ADD, MutationTarget.OUTSIDE_USER): (
            lambda: client.add_outside_collaborator(repo, user, intent.permission)
        ),
    }
    handler = handlers.get((intent.action, intent.target))
    if handler is None:
        raise ValidationFailed(f"{intent.target.value} cannot be used with {intent.action.value}")
    handler()


class MutationExecutor:
    """Preview or execute one :class:`MutationIntent`.

    Previews need only the organization name; ``client`` is required to
    execute. After a successful execution the affected cache slice is resynced
    through ``reconciler`` unless ``resync=False``. A resync failure does not undo the
    remote change; it is logged and reported on the result.
    """

    def __init__(
        self,
        organization: str,
        client: GitHubClient | None = None,
        reconciler: Reconciler | None = None,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self._organization = organization
        self._client = client
        self._reconciler = reconciler
        self._log = log or logger

    def run(
        self,
        intent: MutationIntent,
        *,
        execute: bool = False,
        resync: bool = True,
        cancel: threading.Event | None = None,
    ) -> MutationResult:
        description = intent.describe(self._organization)
        state = MutationState.EXECUTED if execute else MutationState.PREVIEW
        extra = {"action": intent.action.value, "target": intent.target.value, "state": state.value}

        if state is MutationState.PREVIEW:
            message = f"DRYRUN: would {description}"
            self._log.info(message, extra=extra)
            return MutationResult(intent, state, message)

        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"{description} cancelled before it was sent")

        if self._client is None:
            raise ConfigurationInvalid("GitHub credentials are required to execute changes")
        _apply(self._client, intent)
        message = f"{description}: done"
        self._log.info(message, extra=extra)

        if not resync:
            self._log.info("Resync skipped; cache may be stale until the next pull", extra=extra)
            return MutationResult(intent, state, message)
        if self._reconciler is None:
            return MutationResult(intent, state, message)

        try:
            synced = self._resync(intent)
        except GhubDeskError as e:
            self._log.warning(
                "Change applied but cache resync failed", extra={**extra, "error": str(e)}
            )
            return MutationResult(intent, state, message, resync_error=str(e))
        return MutationResult(intent, state, message, resync=synced)

    def _resync(self, intent: MutationIntent) -> SyncResult:
        assert self._reconciler is not None
        reconciler = self._reconciler
        t = intent.target

        if t is MutationTarget.TEAM:
            assert intent.team is not None
            if reconciler.store is not None:
                reconciler.store.forget_team(intent.team)
            return _single(reconciler.sync(SyncKind.TEAMS))
        if t is MutationTarget.USER:
            assert intent.user is not None
            if reconciler.store is not None:
                reconciler.store.forget_user_memberships(intent.user)
            return _single(reconciler.sync(SyncKind.USERS))
        if t is MutationTarget.TEAM_USER:
            return _single(reconciler.sync(SyncKind.TEAM_USER, intent.team))
        return _single(reconciler.sync(SyncKind.REPOS_USERS, intent.repo))


def _single(result: object) -> SyncResult:
    assert isinstance(result, SyncResult)
    return result
