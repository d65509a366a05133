"""FastAPI app factory.

Endpoints are thin wrappers over the view, sync and mutation layers. Each
endpoint is a named tool; ``view.*`` tools are always on, ``pull.*`` and
``auditlogs`` need ``allow_pull`` and ``push.*`` needs ``allow_write``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from ghub_desk import __version__
from ghub_desk.auditlog import build_phrase, fetch_audit_log
from ghub_desk.config import GhubDeskSettings, load_settings
from ghub_desk.errors import (
    ConfigurationInvalid,
    FetchError,
    GhubDeskError,
    ValidationFailed,
)
from ghub_desk.github.client import GitHubClient
from ghub_desk.mutation import MutationExecutor, MutationIntent, plan_add, plan_remove
from ghub_desk.render import to_plain
from ghub_desk.server.models import (
    AddRequest,
    AuditLogResponse,
    MutationResponse,
    PullRequest,
    RemoveRequest,
    SyncResponse,
    ToolsResponse,
    ViewResponse,
)
from ghub_desk.store.cache import CacheStore
from ghub_desk.store.views import VIEW_TARGETS, view_rows
from ghub_desk.sync.reconcile import AggregateSyncResult, Reconciler, SyncKind

logger = logging.getLogger(__name__)

ClientFactory = Callable[[GhubDeskSettings], GitHubClient]

VIEW_TOOLS = tuple(f"view.{name}" for name in VIEW_TARGETS)
PULL_TOOLS = tuple(f"pull.{kind.value}" for kind in SyncKind) + ("auditlogs",)
PUSH_TOOLS = ("push.remove", "push.add")


def allowed_tools(settings: GhubDeskSettings | None) -> list[str]:
    """Tool names exposed for the given permissions."""

    tools = list(VIEW_TOOLS)
    if settings is not None and settings.allow_pull:
        tools += PULL_TOOLS
    if settings is not None and settings.allow_write:
        tools += PUSH_TOOLS
    return tools


def _status_for(error: GhubDeskError) -> int:
    if isinstance(error, ValidationFailed):
        return 400
    if isinstance(error, ConfigurationInvalid):
        return 409
    if isinstance(error, FetchError):
        return 502
    return 500


def create_app(
    settings: GhubDeskSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    make_client = client_factory or GitHubClient.from_settings

    app = FastAPI(
        title="ghub-desk",
        version=__version__,
        description="REST tools over the ghub-desk cache, sync and mutation engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose settings for request handlers that want to read it.
    app.state.settings = settings
    app.state.store = CacheStore(settings.database_path)
    tools = set(allowed_tools(settings))

    def _require(tool: str) -> None:
        if tool not in tools:
            raise HTTPException(
                status_code=403, detail=f"tool {tool} is disabled by configuration"
            )

    @contextmanager
    def _client() -> Iterator[GitHubClient]:
        client = make_client(settings)
        try:
            yield client
        finally:
            client.close()

    @app.exception_handler(GhubDeskError)
    def _handle_error(_request: Request, exc: GhubDeskError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning("Request failed", extra={"status": status, "error": str(exc)})
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__, "organization": settings.organization}

    @app.get("/api/tools", response_model=ToolsResponse)
    def list_tools() -> ToolsResponse:
        return ToolsResponse(tools=allowed_tools(settings))

    @app.get("/api/view/{target}", response_model=ViewResponse)
    def view(target: str, scope: str | None = None) -> ViewResponse:
        _require(f"view.{target}")
        view_target, rows = view_rows(app.state.store, target, scope)
        return ViewResponse(target=view_target.name, count=len(rows), rows=to_plain(rows))

    @app.post("/api/pull/{kind}", response_model=SyncResponse)
    def pull(kind: str, req: PullRequest) -> SyncResponse:
        _require(f"pull.{kind}")
        with _client() as client:
            reconciler = Reconciler(client, app.state.store, interval=settings.interval)
            result = reconciler.sync(kind, req.scope, store=not req.no_store)
        if isinstance(result, AggregateSyncResult):
            return SyncResponse(
                kind=result.kind.value,
                count=result.count,
                stored=not req.no_store,
                succeeded=result.succeeded,
                failed=result.failed,
            )
        return SyncResponse(
            kind=result.kind.value, scope=result.scope, count=result.count, stored=result.stored
        )

    def _mutate(intent: MutationIntent, execute: bool, no_store: bool) -> MutationResponse:
        if not execute:
            outcome = MutationExecutor(settings.organization).run(intent)
        else:
            with _client() as client:
                reconciler = Reconciler(client, app.state.store, interval=settings.interval)
                executor = MutationExecutor(settings.organization, client, reconciler)
                outcome = executor.run(intent, execute=True, resync=not no_store)
        return MutationResponse(
            state=outcome.state.value,
            message=outcome.message,
            resynced=outcome.resync.count if outcome.resync is not None else None,
            resync_error=outcome.resync_error,
        )

    @app.post("/api/push/remove", response_model=MutationResponse)
    def push_remove(req: RemoveRequest) -> MutationResponse:
        _require("push.remove")
        intent = plan_remove(
            team=req.team,
            user=req.user,
            team_user=req.team_user,
            outside_user=req.outside_user,
            repos_user=req.repos_user,
        )
        return _mutate(intent, req.execute, req.no_store)

    @app.post("/api/push/add", response_model=MutationResponse)
    def push_add(req: AddRequest) -> MutationResponse:
        _require("push.add")
        intent = plan_add(
            team_user=req.team_user, outside_user=req.outside_user, permission=req.permission
        )
        return _mutate(intent, req.execute, req.no_store)

    @app.get("/api/auditlogs", response_model=AuditLogResponse)
    def auditlogs(
        user: str | None = None, repo: str | None = None, created: str | None = None
    ) -> AuditLogResponse:
        _require("auditlogs")
        phrase = build_phrase(settings.organization, user, repo, created)
        with _client() as client:
            fetched = fetch_audit_log(client, phrase, interval=settings.interval)
        return AuditLogResponse(
            phrase=phrase, count=fetched.count, entries=to_plain(fetched.items)
        )

    return app
