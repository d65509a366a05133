"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PullRequest(BaseModel):
    scope: str | None = None
    no_store: bool = False


class _PushRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    execute: bool = Field(default=False, alias="exec")
    no_store: bool = False


class RemoveRequest(_PushRequest):
    team: str | None = None
    user: str | None = None
    team_user: str | None = None
    outside_user: str | None = None
    repos_user: str | None = None


class AddRequest(_PushRequest):
    team_user: str | None = None
    outside_user: str | None = None
    permission: str | None = None


class ToolsResponse(BaseModel):
    tools: list[str]


class ViewResponse(BaseModel):
    target: str
    count: int
    rows: list[dict[str, Any]] = Field(default_factory=list)


class SyncResponse(BaseModel):
    kind: str
    scope: str | None = None
    count: int
    stored: bool = False
    succeeded: dict[str, int] = Field(default_factory=dict)
    failed: dict[str, str] = Field(default_factory=dict)


class MutationResponse(BaseModel):
    state: str
    message: str
    resynced: int | None = None
    resync_error: str | None = None


class AuditLogResponse(BaseModel):
    phrase: str
    count: int
    entries: list[dict[str, Any]] = Field(default_factory=list)
