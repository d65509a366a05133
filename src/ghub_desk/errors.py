"""Error taxonomy shared by the sync and mutation engine.

Validation errors are raised before any network or store access. Remote and
store errors are never retried here; they carry enough context (endpoint, page,
target) for the caller to render a useful message.
"""

from __future__ import annotations

from typing import Any


class GhubDeskError(Exception):
    """Base class for all errors raised by ghub-desk."""


class ValidationFailed(GhubDeskError, ValueError):
    """Input was rejected locally; nothing was sent or written."""


class InvalidFormat(ValidationFailed):
    """An identifier does not satisfy its grammar.

    ``rule`` names the check that failed: ``length``, ``charset``,
    ``boundary-hyphen``, ``separator``, ``suffix``, ``date``, ``range``,
    ``permission`` or ``target``.
    """

    def __init__(self, kind: str, value: str, rule: str, message: str) -> None:
        super().__init__(f"invalid {kind} {value!r}: {message}")
        self.kind = kind
        self.value = value
        self.rule = rule
        self.message = message


class MissingTarget(ValidationFailed):
    """No target was supplied where exactly one is required."""


class AmbiguousTarget(ValidationFailed):
    """More than one target was supplied where exactly one is allowed."""


class FetchError(GhubDeskError):
    """Base for errors raised while paging through a remote collection.

    ``partial`` holds everything fetched before the failure. It is informative
    only; the reconciliation layer never stores it.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        page: int | str | None = None,
        partial: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.page = page
        self.partial: list[Any] = partial if partial is not None else []


class PaginationStalled(FetchError):
    """The server returned the same page token twice in a row."""


class OperationCancelled(FetchError):
    """The caller's cancellation event fired."""


class RemoteCallFailed(FetchError):
    """A GitHub API call failed. The underlying error is kept verbatim."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        accepted_scopes: str | None = None,
        accepted_permissions: str | None = None,
        endpoint: str | None = None,
        page: int | str | None = None,
        partial: list[Any] | None = None,
    ) -> None:
        super().__init__(message, endpoint=endpoint, page=page, partial=partial)
        self.status_code = status_code
        self.accepted_scopes = accepted_scopes
        self.accepted_permissions = accepted_permissions

    @property
    def scope_hint(self) -> str:
        if self.accepted_scopes is None and self.accepted_permissions is None:
            return "ResponseHeaderScopePermission:undef"
        return (
            f"X-Accepted-OAuth-Scopes:{self.accepted_scopes or ''}, "
            f"X-Accepted-GitHub-Permissions:{self.accepted_permissions or ''}"
        )

    def __str__(self) -> str:
        base = super().__str__()
        if self.page is not None:
            base = f"failed to fetch page {self.page} of {self.endpoint or 'collection'}: {base}"
        if self.status_code is not None:
            return f"{base} (status={self.status_code}, {self.scope_hint})"
        return base


class StoreFailed(GhubDeskError):
    """A local cache transaction could not commit; the prior snapshot is untouched."""


class ConfigurationInvalid(GhubDeskError):
    """Organization or credential context is missing or inconsistent."""
