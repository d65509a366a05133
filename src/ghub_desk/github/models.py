"""Typed views over the GitHub REST payloads we consume.

Unknown fields are ignored so that API additions never break a sync.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Highest permission first; used to collapse the `permissions` map of a collaborator.
_PERMISSION_ORDER = ("admin", "maintain", "push", "triage", "pull")


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class User(_ApiModel):
    id: int
    login: str
    name: str | None = None
    email: str | None = None
    company: str | None = None
    location: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Team(_ApiModel):
    """A team. ``permission`` is only populated when listed through a repository."""

    id: int
    slug: str
    name: str = ""
    description: str | None = None
    privacy: str | None = None
    permission: str | None = None


class Repository(_ApiModel):
    id: int
    name: str
    full_name: str = ""
    description: str | None = None
    private: bool = False
    language: str | None = None
    size: int = 0
    stargazers_count: int = 0
    watchers_count: int = 0
    forks_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None


class Collaborator(_ApiModel):
    """A direct repository collaborator with its effective permission."""

    id: int
    login: str
    permission: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _collapse_permissions(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or data.get("permission"):
            return data
        out = dict(data)
        role = data.get("role_name")
        if isinstance(role, str) and role.strip():
            out["permission"] = _normalize_role(role)
            return out
        perms = data.get("permissions")
        if isinstance(perms, Mapping):
            for name in _PERMISSION_ORDER:
                if perms.get(name):
                    out["permission"] = name
                    break
        return out


def _normalize_role(role: str) -> str:
    role = role.strip().lower()
    return {"read": "pull", "write": "push"}.get(role, role)


class TokenPermission(_ApiModel):
    """Scope and rate-limit metadata taken from the headers of ``GET /user``."""

    oauth_scopes: str = ""
    accepted_oauth_scopes: str = ""
    accepted_github_permissions: str = ""
    github_media_type: str = ""
    rate_limit: int = 0
    rate_remaining: int = 0
    rate_reset: int = 0

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> TokenPermission:
        def _int(name: str) -> int:
            try:
                return int(headers.get(name, "0") or 0)
            except ValueError:
                return 0

        return cls(
            oauth_scopes=headers.get("X-OAuth-Scopes", ""),
            accepted_oauth_scopes=headers.get("X-Accepted-OAuth-Scopes", ""),
            accepted_github_permissions=headers.get("X-Accepted-GitHub-Permissions", ""),
            github_media_type=headers.get("X-GitHub-Media-Type", ""),
            rate_limit=_int("X-RateLimit-Limit"),
            rate_remaining=_int("X-RateLimit-Remaining"),
            rate_reset=_int("X-RateLimit-Reset"),
        )


def _epoch_ms_to_iso(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat()
    if isinstance(value, str):
        return value.strip()
    return ""


def _first_text(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class AuditEntry(_ApiModel):
    """One organization audit log event, flattened for display."""

    action: str = ""
    actor: str = ""
    actor_ip: str = ""
    user: str = ""
    repo: str = ""
    org: str = ""
    created_at: str = ""
    timestamp: str = ""
    document_id: str = Field(default="", alias="_document_id")
    event: str = ""
    operation_type: str = ""
    permission: str = ""
    team: str = ""
    message: str = ""
    user_agent: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        out = {k: v for k, v in data.items() if isinstance(v, str)}
        out["user"] = _first_text(data, "user", "target_login")
        out["repo"] = _first_text(data, "repo", "repository")
        out["created_at"] = _epoch_ms_to_iso(data.get("created_at"))
        out["timestamp"] = _epoch_ms_to_iso(data.get("@timestamp", data.get("timestamp")))
        return out
