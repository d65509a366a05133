"""Identifier grammar for every name sent to GitHub or used in a cache query.

Validators strip surrounding whitespace and otherwise leave the value alone:
no case folding, no truncation. Each failure raises :class:`InvalidFormat`
naming the rule that rejected the input.
"""

from __future__ import annotations

import re

from ghub_desk.errors import InvalidFormat

USER_LOGIN_PATTERN = r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,37}[A-Za-z0-9])?$"
TEAM_SLUG_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{0,98}[a-z0-9])?$"
REPO_NAME_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_-]{0,99}$"

USER_LOGIN_MIN, USER_LOGIN_MAX = 1, 39
TEAM_SLUG_MIN, TEAM_SLUG_MAX = 1, 100
REPO_NAME_MIN, REPO_NAME_MAX = 1, 100

_USER_CHARS = re.compile(r"[A-Za-z0-9-]+")
_TEAM_CHARS = re.compile(r"[a-z0-9-]+")
_REPO_CHARS = re.compile(r"[A-Za-z0-9_-]+")


def _check_length(kind: str, value: str, lo: int, hi: int) -> None:
    if not lo <= len(value) <= hi:
        raise InvalidFormat(kind, value, "length", f"must be {lo}-{hi} characters long")


def validate_user_login(s: str) -> str:
    """Validate a GitHub login: 1-39 chars, alnum or hyphen, no boundary hyphen."""

    value = s.strip()
    _check_length("user login", value, USER_LOGIN_MIN, USER_LOGIN_MAX)
    if not _USER_CHARS.fullmatch(value):
        raise InvalidFormat(
            "user login", value, "charset", "only ASCII letters, digits and hyphen are allowed"
        )
    if value.startswith("-") or value.endswith("-"):
        raise InvalidFormat(
            "user login", value, "boundary-hyphen", "must not start or end with a hyphen"
        )
    return value


def validate_team_slug(s: str) -> str:
    """Validate a team slug: 1-100 chars, lowercase alnum or hyphen, no boundary hyphen."""

    value = s.strip()
    _check_length("team slug", value, TEAM_SLUG_MIN, TEAM_SLUG_MAX)
    if not _TEAM_CHARS.fullmatch(value):
        raise InvalidFormat(
            "team slug", value, "charset", "only lowercase letters, digits and hyphen are allowed"
        )
    if value.startswith("-") or value.endswith("-"):
        raise InvalidFormat(
            "team slug", value, "boundary-hyphen", "must not start or end with a hyphen"
        )
    return value


def validate_repo_name(s: str) -> str:
    """Validate a repository name: 1-100 chars, alnum, underscore or hyphen, no leading hyphen."""

    value = s.strip()
    _check_length("repository name", value, REPO_NAME_MIN, REPO_NAME_MAX)
    if not _REPO_CHARS.fullmatch(value):
        raise InvalidFormat(
            "repository name",
            value,
            "charset",
            "only letters, digits, underscore and hyphen are allowed",
        )
    if value.startswith("-"):
        raise InvalidFormat(
            "repository name", value, "boundary-hyphen", "must not start with a hyphen"
        )
    return value


def _split_pair(kind: str, s: str, expected: str) -> tuple[str, str]:
    parts = s.split("/")
    if len(parts) != 2:
        raise InvalidFormat(kind, s, "separator", f"expected {expected} with exactly one '/'")
    if any(part != part.strip() for part in parts):
        raise InvalidFormat(kind, s, "charset", "whitespace is not allowed around '/'")
    return parts[0], parts[1]


def parse_team_user_pair(s: str) -> tuple[str, str]:
    """Parse ``{team_slug}/{user_login}`` and validate both halves."""

    kind = "team/user pair"
    team, user = _split_pair(kind, s.strip(), "{team_slug}/{user_login}")
    try:
        validate_team_slug(team)
    except InvalidFormat as e:
        raise InvalidFormat(kind, s, e.rule, f"team slug invalid: {e.message}") from e
    try:
        validate_user_login(user)
    except InvalidFormat as e:
        raise InvalidFormat(kind, s, e.rule, f"user login invalid: {e.message}") from e
    return team, user


def parse_repo_user_pair(s: str) -> tuple[str, str]:
    """Parse ``{repository}/{user_login}`` and validate both halves."""

    kind = "repository/user pair"
    repo, user = _split_pair(kind, s.strip(), "{repository}/{user_login}")
    try:
        validate_repo_name(repo)
    except InvalidFormat as e:
        raise InvalidFormat(kind, s, e.rule, f"repository invalid: {e.message}") from e
    try:
        validate_user_login(user)
    except InvalidFormat as e:
        raise InvalidFormat(kind, s, e.rule, f"user login invalid: {e.message}") from e
    return repo, user


def parse_team_users_path(s: str) -> str:
    """Parse ``{team_slug}/users`` and return the validated slug."""

    kind = "team users path"
    team, suffix = _split_pair(kind, s.strip(), "{team_slug}/users")
    if suffix != "users":
        raise InvalidFormat(kind, s, "suffix", "second segment must be exactly 'users'")
    try:
        return validate_team_slug(team)
    except InvalidFormat as e:
        raise InvalidFormat(kind, s, e.rule, f"team slug invalid: {e.message}") from e
