"""Search phrases for the organization audit log.

The phrase is ``actor:{login} [repo:{org}/{repo}] created:{clause}``, in that
order. Audit entries are paged by cursor through :func:`fetch_all`, so a
cursor that does not advance fails like any other stalled fetch.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from ghub_desk.errors import InvalidFormat, MissingTarget, ValidationFailed
from ghub_desk.github.client import GitHubClient
from ghub_desk.github.models import AuditEntry
from ghub_desk.sync.pagination import DEFAULT_INTERVAL, FetchResult, ProgressReporter, fetch_all
from ghub_desk.validate import validate_repo_name, validate_user_login

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30
DATE_FORMAT = "%Y-%m-%d"

_DATE = r"\d{4}-\d{2}-\d{2}"
_SINGLE = re.compile(rf"^({_DATE})$")
_COMPARISON = re.compile(rf"^(>=|<=)({_DATE})$")
_RANGE = re.compile(rf"^({_DATE})\.\.({_DATE})$")


def _parse_date(raw: str, value: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise InvalidFormat("created", raw, "date", f"{value} is not a valid date") from None


def build_created_clause(raw: str | None, now: datetime | None = None) -> str:
    """Turn a ``--created`` value into a ``created:`` search clause.

    Accepted shapes: empty (the last 30 days), ``YYYY-MM-DD``,
    ``>=YYYY-MM-DD`` / ``<=YYYY-MM-DD`` and ``YYYY-MM-DD..YYYY-MM-DD``.
    A leading ``created:`` is ignored.
    """

    value = (raw or "").strip()
    if value.startswith("created:"):
        value = value.removeprefix("created:").strip()

    if not value:
        now = now or datetime.now(tz=UTC)
        # A naive ``now`` is taken as UTC, not host local time.
        now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)
        since = now - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        return f"created:>={since.strftime(DATE_FORMAT)}"

    if m := _SINGLE.match(value):
        _parse_date(value, m.group(1))
        return f"created:{value}"

    if m := _COMPARISON.match(value):
        _parse_date(value, m.group(2))
        return f"created:{value}"

    if m := _RANGE.match(value):
        start = _parse_date(value, m.group(1))
        end = _parse_date(value, m.group(2))
        if end < start:
            raise InvalidFormat("created", value, "range", "range end is before its start")
        return f"created:{value}"

    raise InvalidFormat(
        "created",
        value,
        "date",
        "use YYYY-MM-DD, >=YYYY-MM-DD, <=YYYY-MM-DD or YYYY-MM-DD..YYYY-MM-DD",
    )


def build_phrase(
    org: str,
    actor: str | None,
    repo: str | None = None,
    created: str | None = None,
    now: datetime | None = None,
) -> str:
    if actor is None or not actor.strip():
        raise MissingTarget("--user is required")
    parts = [f"actor:{validate_user_login(actor)}"]

    if repo is not None and repo.strip():
        name = validate_repo_name(repo)
        if not org.strip():
            raise ValidationFailed("organization is required when --repo is given")
        parts.append(f"repo:{org.strip()}/{name}")

    parts.append(build_created_clause(created, now))
    return " ".join(parts)


def fetch_audit_log(
    client: GitHubClient,
    phrase: str,
    *,
    interval: float = DEFAULT_INTERVAL,
    cancel: threading.Event | None = None,
    progress: ProgressReporter | None = None,
    log: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FetchResult[AuditEntry]:
    """Page through every audit entry matching ``phrase``."""

    log = log or logger
    log.info("Searching audit log", extra={"phrase": phrase})
    return fetch_all(
        lambda token: client.get_audit_log(phrase, token),
        endpoint="audit-log",
        metadata={"phrase": phrase},
        interval=interval,
        cancel=cancel,
        progress=progress,
        log=log,
        sleep=sleep,
    )
