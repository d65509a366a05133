"""CLI entrypoint for ghub-desk.

Exit codes: 0 success, 1 unexpected failure, 2 invalid input, 3 GitHub API
failure, 4 cache failure, 5 configuration error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TextIO

from ghub_desk import __version__
from ghub_desk.auditlog import build_phrase, fetch_audit_log
from ghub_desk.config import (
    GhubDeskSettings,
    load_settings,
    masked_settings,
    resolve_database_path,
)
from ghub_desk.errors import (
    ConfigurationInvalid,
    FetchError,
    OperationCancelled,
    StoreFailed,
    ValidationFailed,
)
from ghub_desk.github.client import GitHubClient
from ghub_desk.logging import configure_logging
from ghub_desk.mutation import MutationExecutor, MutationIntent, plan_add, plan_remove
from ghub_desk.render import OutputFormat, parse_output_format, render
from ghub_desk.store.cache import CacheStore
from ghub_desk.store.views import view_rows
from ghub_desk.sync.reconcile import (
    AGGREGATES,
    SCOPED_KINDS,
    AggregateSyncResult,
    Reconciler,
    SyncKind,
    normalize_scope,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2
EXIT_REMOTE = 3
EXIT_STORE = 4
EXIT_CONFIG = 5
EXIT_INTERRUPTED = 130

# Target flags shared by `pull` and `view`: flag name -> takes a value.
_SYNC_FLAGS: dict[str, bool] = {kind.value: kind in SCOPED_KINDS for kind in SyncKind}
_VIEW_ONLY_FLAGS: dict[str, bool] = {"user-repos": True, "user-teams": True}


class ConsoleProgress:
    """Progress lines on stderr for long fetches."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def start(self, endpoint: str, metadata: Mapping[str, str]) -> None:
        print(f"fetching {endpoint} ...", file=self._stream)

    def page(self, endpoint: str, metadata: Mapping[str, str], pages: int, count: int) -> None:
        print(f"  {endpoint}: {count} items after {pages} page(s)", file=self._stream)


def _add_target_flags(parser: argparse.ArgumentParser, flags: dict[str, bool]) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    for name, takes_value in flags.items():
        dest = "target_" + name.replace("-", "_")
        if takes_value:
            group.add_argument(f"--{name}", dest=dest, metavar="NAME", help=f"Target: {name}")
        else:
            group.add_argument(f"--{name}", dest=dest, action="store_true", help=f"Target: {name}")


def _selected_target(args: argparse.Namespace, flags: dict[str, bool]) -> tuple[str, str | None]:
    for name, takes_value in flags.items():
        value = getattr(args, "target_" + name.replace("-", "_"))
        if takes_value and value is not None:
            return name, value
        if not takes_value and value:
            return name, None
    raise ValidationFailed("at least one target flag must be specified")


def _add_format(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        default=OutputFormat.TABLE.value,
        choices=[f.value for f in OutputFormat],
        help="Output format",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghub-desk",
        description="GitHub organization management with a local SQLite cache",
    )
    parser.add_argument("--version", action="version", version=f"ghub-desk {__version__}")
    parser.add_argument("-c", "--config", default=None, help="Path to the YAML config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the local cache tables")

    pull = subparsers.add_parser("pull", help="Fetch data from the GitHub API into the cache")
    _add_target_flags(pull, _SYNC_FLAGS)
    pull.add_argument(
        "--no-store", action="store_true", help="Fetch only; do not touch the local cache"
    )
    pull.add_argument("--stdout", action="store_true", help="Print the fetched items")
    pull.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds to sleep between API requests (default: from config)",
    )
    _add_format(pull)

    view = subparsers.add_parser("view", help="Display data from the local cache")
    _add_target_flags(view, _SYNC_FLAGS | _VIEW_ONLY_FLAGS)
    _add_format(view)

    for action in ("remove", "add"):
        sub = subparsers.add_parser(
            action,
            help=f"{action.capitalize()} organization access (DRYRUN unless --exec is given)",
        )
        sub.add_argument(
            "--exec", dest="execute", action="store_true", help="Execute the operation"
        )
        sub.add_argument(
            "--no-store",
            action="store_true",
            help="Do not resync the local cache after executing",
        )
        sub.add_argument("--team-user", help="team-slug/username")
        sub.add_argument("--outside-user", help="repo-name/username")
        if action == "remove":
            sub.add_argument("--team", help="Team slug to delete")
            sub.add_argument("--user", help="User to remove from the organization")
            sub.add_argument(
                "--repos-user", help="repo-name/username (direct collaborator to remove)"
            )
        else:
            sub.add_argument(
                "--permission", help="pull, push or admin (aliases: read, write)"
            )

    audit = subparsers.add_parser("auditlogs", help="Search the organization audit log")
    audit.add_argument("--user", help="Actor login (required)")
    audit.add_argument("--repo", help="Limit to one repository")
    audit.add_argument(
        "--created",
        help=(
            "YYYY-MM-DD, >=YYYY-MM-DD, <=YYYY-MM-DD or YYYY-MM-DD..YYYY-MM-DD "
            "(default: last 30 days)"
        ),
    )
    audit.add_argument("--interval", type=float, default=None, help="Seconds between pages")
    _add_format(audit)

    subparsers.add_parser("config", help="Show the effective settings with secrets masked")

    serve = subparsers.add_parser("serve", help="Start the REST tool server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)

    return parser


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn the first Ctrl-C into a cancellation event."""

    cancel = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def _handler(_signum: int, _frame: object) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received; stopping after the current request")
        cancel.set()

    try:
        signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not on the main thread; keep the default handler.
        previous = None
    try:
        yield cancel
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)


def _cmd_init(settings: GhubDeskSettings) -> int:
    path = resolve_database_path(settings.database_path)
    store = CacheStore(path)
    store.close()
    print(f"Initialized cache at {path}")
    return EXIT_OK


def _cmd_pull(args: argparse.Namespace, settings: GhubDeskSettings) -> int:
    target, scope = _selected_target(args, _SYNC_FLAGS)
    kind = SyncKind.parse(target)
    if kind in SCOPED_KINDS:
        scope = normalize_scope(kind, scope)
    interval = settings.interval if args.interval is None else args.interval
    if interval < 0:
        raise ValidationFailed("--interval must not be negative")

    # Aggregates read their parent keys from the cache even when not storing.
    needs_cache = not args.no_store or kind in AGGREGATES
    store = CacheStore(settings.database_path) if needs_cache else None
    client = GitHubClient.from_settings(settings)
    try:
        with _cancel_on_interrupt() as cancel:
            reconciler = Reconciler(
                client, store, interval=interval, cancel=cancel, progress=ConsoleProgress()
            )
            result = reconciler.sync(kind, scope, store=not args.no_store)
    finally:
        client.close()
        if store is not None:
            store.close()

    if isinstance(result, AggregateSyncResult):
        print(result.summary())
        for key, error in result.failed.items():
            print(f"  failed {key}: {error}")
        return EXIT_OK if not result.failed else EXIT_REMOTE

    if args.stdout or args.no_store:
        print(render(result.items, args.format))
    action = "stored" if result.stored else "fetched"
    print(f"{result.count} {kind.value} {action}", file=sys.stderr)
    return EXIT_OK


def _cmd_view(args: argparse.Namespace, settings: GhubDeskSettings) -> int:
    target, scope = _selected_target(args, _SYNC_FLAGS | _VIEW_ONLY_FLAGS)
    fmt = parse_output_format(args.format)
    store = CacheStore(settings.database_path)
    try:
        view, rows = view_rows(store, target, scope)
    finally:
        store.close()
    print(render(rows, fmt, columns=view.columns))
    return EXIT_OK


def _plan(args: argparse.Namespace) -> MutationIntent:
    if args.command == "remove":
        return plan_remove(
            team=args.team,
            user=args.user,
            team_user=args.team_user,
            outside_user=args.outside_user,
            repos_user=args.repos_user,
        )
    return plan_add(
        team_user=args.team_user, outside_user=args.outside_user, permission=args.permission
    )


def _cmd_mutate(args: argparse.Namespace, settings: GhubDeskSettings) -> int:
    intent = _plan(args)
    if not args.execute:
        result = MutationExecutor(settings.organization).run(intent)
        print(result.message)
        return EXIT_OK

    store = None if args.no_store else CacheStore(settings.database_path)
    client = GitHubClient.from_settings(settings)
    try:
        with _cancel_on_interrupt() as cancel:
            reconciler = Reconciler(client, store, interval=settings.interval, cancel=cancel)
            executor = MutationExecutor(settings.organization, client, reconciler)
            result = executor.run(intent, execute=True, resync=not args.no_store, cancel=cancel)
    finally:
        client.close()
        if store is not None:
            store.close()

    print(result.message)
    if result.resync_error:
        print(f"warning: cache resync failed: {result.resync_error}", file=sys.stderr)
    return EXIT_OK


def _cmd_auditlogs(args: argparse.Namespace, settings: GhubDeskSettings) -> int:
    phrase = build_phrase(settings.organization, args.user, args.repo, args.created)
    fmt = parse_output_format(args.format)
    interval = settings.interval if args.interval is None else args.interval

    client = GitHubClient.from_settings(settings)
    try:
        with _cancel_on_interrupt() as cancel:
            fetched = fetch_audit_log(
                client, phrase, interval=interval, cancel=cancel, progress=ConsoleProgress()
            )
    finally:
        client.close()

    print(
        render(
            fetched.items,
            fmt,
            columns=("created_at", "action", "actor", "user", "repo", "team", "permission"),
        )
    )
    return EXIT_OK


def _cmd_serve(args: argparse.Namespace, settings: GhubDeskSettings) -> int:
    import uvicorn

    from ghub_desk.server.app import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return EXIT_OK


def _exit_code(error: Exception) -> int:
    if isinstance(error, OperationCancelled):
        return EXIT_INTERRUPTED
    if isinstance(error, ValidationFailed):
        return EXIT_INVALID
    if isinstance(error, FetchError):
        return EXIT_REMOTE
    if isinstance(error, StoreFailed):
        return EXIT_STORE
    if isinstance(error, ConfigurationInvalid):
        return EXIT_CONFIG
    return EXIT_FAILURE


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config, validate=args.command not in {"init", "config"})
    except ConfigurationInvalid as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(settings.log_level, debug=args.debug or settings.debug)

    try:
        if args.command == "init":
            return _cmd_init(settings)
        if args.command == "config":
            print(render(masked_settings(settings), OutputFormat.YAML))
            return EXIT_OK
        if args.command == "pull":
            return _cmd_pull(args, settings)
        if args.command == "view":
            return _cmd_view(args, settings)
        if args.command in {"remove", "add"}:
            return _cmd_mutate(args, settings)
        if args.command == "auditlogs":
            return _cmd_auditlogs(args, settings)
        if args.command == "serve":
            return _cmd_serve(args, settings)

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_INVALID

    except (ValidationFailed, FetchError, StoreFailed, ConfigurationInvalid) as e:
        logger.error("Command failed", extra={"command": args.command, "error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return _exit_code(e)

    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    except Exception:
        logger.exception("Command failed")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
