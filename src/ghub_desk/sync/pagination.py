"""Generic "list everything" loop shared by every remote collection.

Page numbers and audit-log cursors are both plain page tokens here, so the
throttle, the stall check and cancellation are written once.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

from ghub_desk.errors import OperationCancelled, PaginationStalled, RemoteCallFailed
from ghub_desk.github.client import Page, PageToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL = 1.0

ListPage = Callable[[PageToken | None], Page[T]]


class ProgressReporter(Protocol):
    """Observer for long-running fetches."""

    def start(self, endpoint: str, metadata: Mapping[str, str]) -> None: ...

    def page(self, endpoint: str, metadata: Mapping[str, str], pages: int, count: int) -> None: ...


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    endpoint: str
    items: list[T] = field(default_factory=list)
    pages: int = 0

    @property
    def count(self) -> int:
        return len(self.items)


def _ensure_not_cancelled(
    cancel: threading.Event | None, endpoint: str, token: PageToken | None, items: list[T]
) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(
            f"fetch of {endpoint} cancelled", endpoint=endpoint, page=token, partial=list(items)
        )


def throttle(
    interval: float,
    *,
    cancel: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Wait ``interval`` seconds. Returns ``False`` if cancelled while waiting."""

    if cancel is not None:
        if interval <= 0:
            return not cancel.is_set()
        return not cancel.wait(interval)
    if interval > 0:
        sleep(interval)
    return True


def fetch_all(
    list_page: ListPage[T],
    *,
    endpoint: str,
    metadata: Mapping[str, str] | None = None,
    interval: float = DEFAULT_INTERVAL,
    start_token: PageToken | None = None,
    cancel: threading.Event | None = None,
    progress: ProgressReporter | None = None,
    log: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FetchResult[T]:
    """Request pages until the server reports no next token.

    Raises:
        RemoteCallFailed: a page request failed; ``page`` and ``partial`` are set.
        PaginationStalled: the server handed back the token just requested.
        OperationCancelled: ``cancel`` was set before a request or during the throttle.
    """

    log = log or logger
    meta = dict(metadata or {})
    items: list[T] = []
    pages = 0
    token = start_token

    if progress is not None:
        progress.start(endpoint, meta)

    while True:
        _ensure_not_cancelled(cancel, endpoint, token, items)

        try:
            page = list_page(token)
        except RemoteCallFailed as e:
            e.endpoint = endpoint
            e.page = token if token is not None else 1
            e.partial = list(items)
            log.error(
                "Page request failed",
                extra={"endpoint": endpoint, "page": e.page, **meta},
            )
            raise

        pages += 1
        if page.items:
            items.extend(page.items)
            log.info(
                "%d items fetched",
                len(items),
                extra={"endpoint": endpoint, "pages": pages, **meta},
            )
        if progress is not None:
            progress.page(endpoint, meta, pages, len(items))

        next_token = page.next_token
        if next_token is None:
            break
        if next_token == token:
            raise PaginationStalled(
                f"pagination of {endpoint} stalled: token {next_token!r} did not advance",
                endpoint=endpoint,
                page=next_token,
                partial=list(items),
            )
        token = next_token

        if not throttle(interval, cancel=cancel, sleep=sleep):
            _ensure_not_cancelled(cancel, endpoint, token, items)

    return FetchResult(endpoint=endpoint, items=items, pages=pages)
