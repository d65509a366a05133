"""GitHub REST client for organization membership, team and repository data.

Listing calls return one :class:`Page` at a time so that pagination, throttling
and stall detection stay in :mod:`ghub_desk.sync.pagination`. Mutating calls
return nothing on success and raise :class:`RemoteCallFailed` otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from urllib.parse import parse_qs, quote, urlparse

import requests
from github import Auth, GithubException, GithubIntegration

from ghub_desk.errors import ConfigurationInvalid, RemoteCallFailed
from ghub_desk.github.models import (
    AuditEntry,
    Collaborator,
    Repository,
    Team,
    TokenPermission,
    User,
)

if TYPE_CHECKING:
    from ghub_desk.config import GhubDeskSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageToken = int | str

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_PER_PAGE = 100
API_VERSION = "2022-11-28"
REQUEST_TIMEOUT_SECONDS = 30


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of a remote collection.

    ``next_token`` is the page number or cursor to request next, or ``None``
    when the server reports no further page.
    """

    items: list[T] = field(default_factory=list)
    next_token: PageToken | None = None


def installation_token(
    *, app_id: int, installation_id: int, private_key: str, base_url: str = DEFAULT_BASE_URL
) -> str:
    """Exchange GitHub App credentials for a short-lived installation token."""

    integration = GithubIntegration(auth=Auth.AppAuth(app_id, private_key), base_url=base_url)
    try:
        return integration.get_access_token(installation_id).token
    except GithubException as e:
        raise RemoteCallFailed(
            f"failed to obtain installation token: {e}", status_code=e.status
        ) from e
    finally:
        integration.close()


class GitHubClient:
    """Small wrapper around the GitHub REST API scoped to one organization."""

    def __init__(
        self,
        *,
        token: str,
        organization: str,
        base_url: str = DEFAULT_BASE_URL,
        per_page: int = DEFAULT_PER_PAGE,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ConfigurationInvalid("GitHub credentials are required")
        if not organization.strip():
            raise ConfigurationInvalid("organization is required")

        self._organization = organization.strip()
        self._rest_base_url = base_url.rstrip("/")
        self._per_page = per_page
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "ghub-desk",
            }
        )

    @classmethod
    def from_settings(cls, settings: GhubDeskSettings) -> GitHubClient:
        """Build a client from validated settings (token or GitHub App)."""

        if settings.app_configured:
            assert settings.app_id is not None and settings.installation_id is not None
            token = installation_token(
                app_id=settings.app_id,
                installation_id=settings.installation_id,
                private_key=settings.private_key,
                base_url=settings.github_base_url,
            )
            logger.info("Authenticated as GitHub App installation")
        else:
            token = settings.github_token
        return cls(
            token=token,
            organization=settings.organization,
            base_url=settings.github_base_url,
        )

    @property
    def organization(self) -> str:
        return self._organization

    def _url(self, path: str) -> str:
        return f"{self._rest_base_url}/{path.lstrip('/')}"

    def _org_path(self, *segments: str) -> str:
        parts = [quote(self._organization, safe="")] + [quote(s, safe="") for s in segments]
        return "orgs/" + "/".join(parts)

    def _repo_path(self, repo: str, *segments: str) -> str:
        parts = [quote(self._organization, safe=""), quote(repo, safe="")]
        parts += [quote(s, safe="") for s in segments]
        return "repos/" + "/".join(parts)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> requests.Response:
        url = self._url(path)
        logger.debug("API: %s %s", method, url)
        try:
            resp = self._session.request(
                method, url, params=params, json=payload, timeout=REQUEST_TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            raise RemoteCallFailed(f"{method} {path}: {e}") from e

        if resp.status_code >= 400:
            message = resp.reason or "request failed"
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                message = body["message"]
            raise RemoteCallFailed(
                f"{method} {path}: {message}",
                status_code=resp.status_code,
                accepted_scopes=resp.headers.get("X-Accepted-OAuth-Scopes"),
                accepted_permissions=resp.headers.get("X-Accepted-GitHub-Permissions"),
            )
        return resp

    @staticmethod
    def _next_token(resp: requests.Response, param: str) -> str | None:
        link = resp.links.get("next")
        if not link:
            return None
        values = parse_qs(urlparse(link.get("url", "")).query).get(param)
        if not values or not values[0].strip():
            return None
        return values[0].strip()

    def _list(
        self,
        path: str,
        token: PageToken | None,
        *,
        params: dict[str, Any] | None = None,
    ) -> tuple[list[dict[str, Any]], int | None]:
        page = int(token) if token is not None else 1
        query = {"per_page": self._per_page, "page": page, **(params or {})}
        resp = self._request("GET", path, params=query)
        payload = resp.json()
        if not isinstance(payload, list):
            raise RemoteCallFailed(f"GET {path}: expected a JSON list")
        next_raw = self._next_token(resp, "page")
        next_page = int(next_raw) if next_raw is not None and next_raw.isdigit() else None
        return [p for p in payload if isinstance(p, dict)], next_page

    # Listing

    def list_org_members(self, token: PageToken | None = None) -> Page[User]:
        raw, nxt = self._list(self._org_path("members"), token)
        return Page([User.model_validate(r) for r in raw], nxt)

    def list_outside_collaborators(self, token: PageToken | None = None) -> Page[User]:
        raw, nxt = self._list(self._org_path("outside_collaborators"), token)
        return Page([User.model_validate(r) for r in raw], nxt)

    def list_teams(self, token: PageToken | None = None) -> Page[Team]:
        raw, nxt = self._list(self._org_path("teams"), token)
        return Page([Team.model_validate(r) for r in raw], nxt)

    def list_repositories(self, token: PageToken | None = None) -> Page[Repository]:
        raw, nxt = self._list(self._org_path("repos"), token, params={"type": "all"})
        return Page([Repository.model_validate(r) for r in raw], nxt)

    def list_team_members(self, team_slug: str, token: PageToken | None = None) -> Page[User]:
        raw, nxt = self._list(self._org_path("teams", team_slug, "members"), token)
        return Page([User.model_validate(r) for r in raw], nxt)

    def list_repo_collaborators(
        self, repo: str, token: PageToken | None = None
    ) -> Page[Collaborator]:
        raw, nxt = self._list(
            self._repo_path(repo, "collaborators"), token, params={"affiliation": "direct"}
        )
        return Page([Collaborator.model_validate(r) for r in raw], nxt)

    def list_repo_teams(self, repo: str, token: PageToken | None = None) -> Page[Team]:
        raw, nxt = self._list(self._repo_path(repo, "teams"), token)
        return Page([Team.model_validate(r) for r in raw], nxt)

    def get_audit_log(self, phrase: str, token: PageToken | None = None) -> Page[AuditEntry]:
        """Fetch one cursor page of the organization audit log."""

        params: dict[str, Any] = {"phrase": phrase, "per_page": self._per_page}
        if token is not None:
            params["after"] = str(token)
        path = self._org_path("audit-log")
        resp = self._request("GET", path, params=params)
        payload = resp.json()
        if not isinstance(payload, list):
            raise RemoteCallFailed(f"GET {path}: expected a JSON list")
        entries = [AuditEntry.model_validate(p) for p in payload if isinstance(p, dict)]
        return Page(entries, self._next_token(resp, "after"))

    # Single lookups

    def get_user(self, login: str) -> User:
        resp = self._request("GET", f"users/{quote(login, safe='')}")
        return User.model_validate(resp.json())

    def get_team(self, team_slug: str) -> Team:
        resp = self._request("GET", self._org_path("teams", team_slug))
        return Team.model_validate(resp.json())

    def whoami(self) -> TokenPermission:
        """Return the scopes and rate-limit counters of the current credential."""

        resp = self._request("GET", "user")
        return TokenPermission.from_headers(resp.headers)

    # Mutations

    def delete_team(self, team_slug: str) -> None:
        self._request("DELETE", self._org_path("teams", team_slug))
        logger.info("Team deleted", extra={"team": team_slug})

    def remove_org_member(self, login: str) -> None:
        self._request("DELETE", self._org_path("members", login))
        logger.info("Organization member removed", extra={"user": login})

    def add_team_member(self, team_slug: str, login: str, role: str = "member") -> None:
        self._request(
            "PUT",
            self._org_path("teams", team_slug, "memberships", login),
            payload={"role": role},
        )
        logger.info("Team member added", extra={"team": team_slug, "user": login})

    def remove_team_member(self, team_slug: str, login: str) -> None:
        self._request("DELETE", self._org_path("teams", team_slug, "memberships", login))
        logger.info("Team member removed", extra={"team": team_slug, "user": login})

    def add_outside_collaborator(
        self, repo: str, login: str, permission: str | None = None
    ) -> None:
        payload = {"permission": permission} if permission else None
        self._request("PUT", self._repo_path(repo, "collaborators", login), payload=payload)
        logger.info("Collaborator invited", extra={"repo": repo, "user": login})

    def remove_repo_collaborator(self, repo: str, login: str) -> None:
        self._request("DELETE", self._repo_path(repo, "collaborators", login))
        logger.info("Collaborator removed", extra={"repo": repo, "user": login})

    def close(self) -> None:
        self._session.close()
        logger.debug("GitHub client closed")
