"""Local SQLite cache of organization state.

Every ``replace_*`` call runs its delete and inserts inside one transaction:
either the whole slice reflects the new snapshot or nothing changes. Scoped
replacements only delete rows for their own key (team slug or repository).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ghub_desk.errors import StoreFailed
from ghub_desk.github.models import Collaborator, Repository, Team, TokenPermission, User
from ghub_desk.store.schema import (
    Base,
    CachedOutsideUser,
    CachedRepository,
    CachedRepoTeam,
    CachedRepoUser,
    CachedTeam,
    CachedTeamUser,
    CachedTokenPermission,
    CachedUser,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_FILE = "ghub-desk.db"

PERMISSION_RANK = {"pull": 1, "triage": 2, "push": 3, "maintain": 4, "admin": 5}

_Row = TypeVar("_Row", bound=Base)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _unique(rows: Iterable[_Row], key: str) -> list[_Row]:
    # Pages can shift while we walk them; keep the last copy of each key.
    out: dict[Any, _Row] = {}
    for row in rows:
        out[getattr(row, key)] = row
    return list(out.values())


def _stronger(a: str | None, b: str | None) -> str | None:
    if PERMISSION_RANK.get(b or "", 0) > PERMISSION_RANK.get(a or "", 0):
        return b
    return a


class CacheStore:
    """SQLAlchemy-backed store for users, teams, repositories and their links."""

    def __init__(self, path: Path | str = DEFAULT_DB_FILE) -> None:
        self._path = str(path)
        url = "sqlite://" if self._path == ":memory:" else f"sqlite:///{self._path}"
        self._engine = create_engine(url)
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreFailed(f"failed to initialize cache at {self._path}: {e}") from e
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)
        logger.debug("Cache store opened", extra={"path": self._path})

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Cache transaction rolled back", extra={"action": action})
            raise StoreFailed(f"failed to {action}: {e}") from e

    @contextmanager
    def _reading(self) -> Iterator[Session]:
        try:
            with self._sessions() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreFailed(f"failed to read cache: {e}") from e

    def close(self) -> None:
        self._engine.dispose()

    # Whole-collection replacement

    def replace_users(self, users: Sequence[User]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedUser(
                    id=u.id,
                    login=u.login,
                    name=u.name,
                    email=u.email,
                    company=u.company,
                    location=u.location,
                    created_at=u.created_at,
                    updated_at=u.updated_at,
                    synced_at=now,
                )
                for u in users
            ),
            "id",
        )
        with self._transaction("replace users") as session:
            session.execute(delete(CachedUser))
            session.add_all(rows)
        return len(rows)

    def replace_outside_users(self, users: Sequence[User]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedOutsideUser(
                    id=u.id,
                    login=u.login,
                    name=u.name,
                    email=u.email,
                    company=u.company,
                    location=u.location,
                    synced_at=now,
                )
                for u in users
            ),
            "id",
        )
        with self._transaction("replace outside collaborators") as session:
            session.execute(delete(CachedOutsideUser))
            session.add_all(rows)
        return len(rows)

    def replace_teams(self, teams: Sequence[Team]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedTeam(
                    id=t.id,
                    slug=t.slug,
                    name=t.name,
                    description=t.description,
                    privacy=t.privacy,
                    permission=t.permission,
                    synced_at=now,
                )
                for t in teams
            ),
            "id",
        )
        with self._transaction("replace teams") as session:
            session.execute(delete(CachedTeam))
            session.add_all(rows)
        return len(rows)

    def replace_repositories(self, repos: Sequence[Repository]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedRepository(
                    id=r.id,
                    name=r.name,
                    full_name=r.full_name,
                    description=r.description,
                    private=r.private,
                    language=r.language,
                    size=r.size,
                    stargazers_count=r.stargazers_count,
                    watchers_count=r.watchers_count,
                    forks_count=r.forks_count,
                    created_at=r.created_at,
                    updated_at=r.updated_at,
                    pushed_at=r.pushed_at,
                    synced_at=now,
                )
                for r in repos
            ),
            "id",
        )
        with self._transaction("replace repositories") as session:
            session.execute(delete(CachedRepository))
            session.add_all(rows)
        return len(rows)

    def replace_token_permission(self, permission: TokenPermission) -> None:
        with self._transaction("replace token permission") as session:
            session.execute(delete(CachedTokenPermission))
            session.add(CachedTokenPermission(**permission.model_dump(), synced_at=_utcnow()))

    # Scoped replacement

    def replace_team_members(self, team_slug: str, team_id: int, members: Sequence[User]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedTeamUser(
                    team_id=team_id,
                    user_id=u.id,
                    team_slug=team_slug,
                    user_login=u.login,
                    role="member",
                    synced_at=now,
                )
                for u in members
            ),
            "user_id",
        )
        with self._transaction(f"replace members of team {team_slug}") as session:
            session.execute(delete(CachedTeamUser).where(CachedTeamUser.team_slug == team_slug))
            session.add_all(rows)
        return len(rows)

    def replace_repo_collaborators(self, repo: str, collaborators: Sequence[Collaborator]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedRepoUser(
                    repo_name=repo,
                    user_id=c.id,
                    user_login=c.login,
                    permission=c.permission,
                    synced_at=now,
                )
                for c in collaborators
            ),
            "user_id",
        )
        with self._transaction(f"replace collaborators of {repo}") as session:
            session.execute(delete(CachedRepoUser).where(CachedRepoUser.repo_name == repo))
            session.add_all(rows)
        return len(rows)

    def replace_repo_teams(self, repo: str, teams: Sequence[Team]) -> int:
        now = _utcnow()
        rows = _unique(
            (
                CachedRepoTeam(
                    repo_name=repo,
                    team_id=t.id,
                    team_slug=t.slug,
                    team_name=t.name,
                    permission=t.permission,
                    privacy=t.privacy,
                    description=t.description,
                    synced_at=now,
                )
                for t in teams
            ),
            "team_id",
        )
        with self._transaction(f"replace team grants of {repo}") as session:
            session.execute(delete(CachedRepoTeam).where(CachedRepoTeam.repo_name == repo))
            session.add_all(rows)
        return len(rows)

    def forget_team(self, team_slug: str) -> None:
        """Drop membership and grant rows that still point at a deleted team."""

        with self._transaction(f"forget team {team_slug}") as session:
            session.execute(delete(CachedTeamUser).where(CachedTeamUser.team_slug == team_slug))
            session.execute(delete(CachedRepoTeam).where(CachedRepoTeam.team_slug == team_slug))

    def forget_user_memberships(self, login: str) -> None:
        with self._transaction(f"forget memberships of {login}") as session:
            session.execute(delete(CachedTeamUser).where(CachedTeamUser.user_login == login))

    # Reads

    def _all(self, model: type[_Row], *order_by: Any) -> list[dict[str, Any]]:
        with self._reading() as session:
            return [row.as_dict() for row in session.scalars(select(model).order_by(*order_by))]

    def list_users(self) -> list[dict[str, Any]]:
        return self._all(CachedUser, CachedUser.login)

    def list_outside_users(self) -> list[dict[str, Any]]:
        return self._all(CachedOutsideUser, CachedOutsideUser.login)

    def list_teams(self) -> list[dict[str, Any]]:
        return self._all(CachedTeam, CachedTeam.slug)

    def list_repositories(self) -> list[dict[str, Any]]:
        return self._all(CachedRepository, CachedRepository.name)

    def token_permission(self) -> dict[str, Any] | None:
        rows = self._all(CachedTokenPermission, CachedTokenPermission.id.desc())
        return rows[0] if rows else None

    def team_slugs(self) -> list[str]:
        with self._reading() as session:
            return list(session.scalars(select(CachedTeam.slug).order_by(CachedTeam.slug)))

    def repository_names(self) -> list[str]:
        with self._reading() as session:
            stmt = select(CachedRepository.name).order_by(CachedRepository.name)
            return list(session.scalars(stmt))

    def team_id(self, team_slug: str) -> int | None:
        with self._reading() as session:
            stmt = select(CachedTeam.id).where(CachedTeam.slug == team_slug)
            return session.scalars(stmt).first()

    def team_members(self, team_slug: str) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedTeamUser)
                .where(CachedTeamUser.team_slug == team_slug)
                .order_by(CachedTeamUser.user_login)
            )
            return [row.as_dict() for row in session.scalars(stmt)]

    def repo_collaborators(self, repo: str) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedRepoUser)
                .where(CachedRepoUser.repo_name == repo)
                .order_by(CachedRepoUser.user_login)
            )
            return [row.as_dict() for row in session.scalars(stmt)]

    def repo_teams(self, repo: str) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedRepoTeam)
                .where(CachedRepoTeam.repo_name == repo)
                .order_by(CachedRepoTeam.team_slug)
            )
            return [row.as_dict() for row in session.scalars(stmt)]

    def all_team_members(self) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedTeamUser, CachedTeam.name, CachedUser.name)
                .outerjoin(CachedTeam, CachedTeam.slug == CachedTeamUser.team_slug)
                .outerjoin(CachedUser, CachedUser.login == CachedTeamUser.user_login)
                .order_by(CachedTeamUser.team_slug, CachedTeamUser.user_login)
            )
            return [
                {
                    "team_slug": member.team_slug,
                    "team_name": team_name or "",
                    "user_login": member.user_login,
                    "user_name": user_name or "",
                    "role": member.role,
                }
                for member, team_name, user_name in session.execute(stmt)
            ]

    def all_repo_collaborators(self) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedRepoUser, CachedRepository.full_name)
                .outerjoin(CachedRepository, CachedRepository.name == CachedRepoUser.repo_name)
                .order_by(CachedRepoUser.repo_name, CachedRepoUser.user_login)
            )
            return [
                {
                    "repo_name": link.repo_name,
                    "full_name": full_name or "",
                    "user_login": link.user_login,
                    "permission": link.permission or "",
                }
                for link, full_name in session.execute(stmt)
            ]

    def all_repo_teams(self) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = select(CachedRepoTeam).order_by(
                CachedRepoTeam.repo_name, CachedRepoTeam.team_slug
            )
            return [row.as_dict() for row in session.scalars(stmt)]

    def user_teams(self, login: str) -> list[dict[str, Any]]:
        with self._reading() as session:
            stmt = (
                select(CachedTeamUser.team_slug, CachedTeam.name, CachedTeamUser.role)
                .outerjoin(CachedTeam, CachedTeam.slug == CachedTeamUser.team_slug)
                .where(CachedTeamUser.user_login == login)
                .order_by(CachedTeamUser.team_slug)
            )
            return [
                {"team_slug": slug, "team_name": name or "", "role": role}
                for slug, name, role in session.execute(stmt)
            ]

    def user_repositories(self, login: str) -> list[dict[str, Any]]:
        """Repositories a user can reach, directly or through a team grant."""

        access: dict[str, dict[str, Any]] = {}

        def _grant(repo: str, source: str, permission: str | None) -> None:
            entry = access.setdefault(
                repo, {"repository": repo, "access_from": [], "permission": None}
            )
            entry["access_from"].append(source)
            entry["permission"] = _stronger(entry["permission"], permission)

        with self._reading() as session:
            direct = select(CachedRepoUser.repo_name, CachedRepoUser.permission).where(
                CachedRepoUser.user_login == login
            )
            for repo, permission in session.execute(direct):
                _grant(repo, "direct", permission)

            via_team = (
                select(
                    CachedRepoTeam.repo_name, CachedRepoTeam.team_slug, CachedRepoTeam.permission
                )
                .join(CachedTeamUser, CachedTeamUser.team_slug == CachedRepoTeam.team_slug)
                .where(CachedTeamUser.user_login == login)
                .order_by(CachedRepoTeam.team_slug)
            )
            for repo, slug, permission in session.execute(via_team):
                _grant(repo, f"team:{slug}", permission)

        return [
            {**entry, "permission": entry["permission"] or ""}
            for _, entry in sorted(access.items())
        ]
