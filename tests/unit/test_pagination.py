"""Unit tests for the shared page-fetch loop."""

from __future__ import annotations

import threading
from collections.abc import Mapping

import pytest

from ghub_desk.errors import OperationCancelled, PaginationStalled, RemoteCallFailed
from ghub_desk.github.client import Page
from ghub_desk.sync.pagination import fetch_all, throttle


def _pages(*pages: Page) -> tuple[list[object], object]:
    calls: list[object] = []

    def list_page(token: object) -> Page:
        calls.append(token)
        index = 0 if token is None else int(token) - 1
        return pages[index]

    return calls, list_page


def test_fetch_all_walks_until_no_next_token() -> None:
    calls, list_page = _pages(Page([1, 2], 2), Page([3, 4], 3), Page([5], None))
    sleeps: list[float] = []

    result = fetch_all(list_page, endpoint="members", interval=0.5, sleep=sleeps.append)

    assert result.items == [1, 2, 3, 4, 5]
    assert result.pages == 3
    assert result.count == 5
    assert calls == [None, 2, 3]
    assert sleeps == [0.5, 0.5]


def test_fetch_all_single_empty_page() -> None:
    _calls, list_page = _pages(Page([], None))

    result = fetch_all(list_page, endpoint="teams", interval=0)

    assert result.items == []
    assert result.pages == 1


def test_fetch_all_raises_when_token_repeats() -> None:
    _calls, list_page = _pages(Page([1], 2), Page([2], 2))

    with pytest.raises(PaginationStalled) as exc:
        fetch_all(list_page, endpoint="members", interval=0)

    assert exc.value.endpoint == "members"
    assert exc.value.page == 2
    assert exc.value.partial == [1, 2]


def test_fetch_all_annotates_remote_failure() -> None:
    def list_page(token: object) -> Page:
        if token is None:
            return Page(["a", "b"], 2)
        raise RemoteCallFailed("GET orgs/acme/members: Server Error", status_code=500)

    with pytest.raises(RemoteCallFailed) as exc:
        fetch_all(list_page, endpoint="members", interval=0)

    err = exc.value
    assert err.endpoint == "members"
    assert err.page == 2
    assert err.partial == ["a", "b"]
    assert "failed to fetch page 2 of members" in str(err)
    assert "status=500" in str(err)


def test_fetch_all_first_page_failure_reports_page_one() -> None:
    def list_page(_token: object) -> Page:
        raise RemoteCallFailed("boom")

    with pytest.raises(RemoteCallFailed) as exc:
        fetch_all(list_page, endpoint="repos", interval=0)
    assert exc.value.page == 1
    assert exc.value.partial == []


def test_fetch_all_cancelled_before_first_request() -> None:
    cancel = threading.Event()
    cancel.set()
    calls, list_page = _pages(Page([1], None))

    with pytest.raises(OperationCancelled):
        fetch_all(list_page, endpoint="members", interval=0, cancel=cancel)
    assert calls == []


def test_fetch_all_cancelled_between_pages_keeps_partial() -> None:
    cancel = threading.Event()
    seen: list[object] = []

    def list_page(token: object) -> Page:
        seen.append(token)
        cancel.set()
        return Page(["first"], 2)

    with pytest.raises(OperationCancelled) as exc:
        fetch_all(list_page, endpoint="members", interval=0, cancel=cancel)

    assert seen == [None]
    assert exc.value.partial == ["first"]


def test_fetch_all_accepts_cursor_tokens() -> None:
    pages = {None: Page(["x"], "abc"), "abc": Page(["y"], "def"), "def": Page(["z"], None)}

    result = fetch_all(lambda token: pages[token], endpoint="audit-log", interval=0)

    assert result.items == ["x", "y", "z"]


def test_fetch_all_reports_progress() -> None:
    events: list[tuple[str, ...]] = []

    class Recorder:
        def start(self, endpoint: str, metadata: Mapping[str, str]) -> None:
            events.append(("start", endpoint, metadata.get("kind", "")))

        def page(
            self, endpoint: str, metadata: Mapping[str, str], pages: int, count: int
        ) -> None:
            events.append(("page", endpoint, str(pages), str(count)))

    _calls, list_page = _pages(Page([1, 2], 2), Page([3], None))

    fetch_all(
        list_page, endpoint="members", metadata={"kind": "users"}, interval=0, progress=Recorder()
    )

    assert events == [
        ("start", "members", "users"),
        ("page", "members", "1", "2"),
        ("page", "members", "2", "3"),
    ]


def test_throttle() -> None:
    slept: list[float] = []
    assert throttle(0.25, sleep=slept.append) is True
    assert slept == [0.25]

    assert throttle(0, sleep=slept.append) is True
    assert slept == [0.25]

    cancel = threading.Event()
    assert throttle(0, cancel=cancel) is True
    cancel.set()
    assert throttle(0, cancel=cancel) is False
    assert throttle(0.01, cancel=cancel) is False
