"""Unit tests for identifier grammar."""

from __future__ import annotations

import pytest

from ghub_desk.errors import InvalidFormat, ValidationFailed
from ghub_desk.validate import (
    parse_repo_user_pair,
    parse_team_user_pair,
    parse_team_users_path,
    validate_repo_name,
    validate_team_slug,
    validate_user_login,
)


def test_user_login_length_bounds() -> None:
    assert validate_user_login("a") == "a"
    assert validate_user_login("a" * 39) == "a" * 39

    with pytest.raises(InvalidFormat) as exc:
        validate_user_login("a" * 40)
    assert exc.value.rule == "length"

    with pytest.raises(InvalidFormat) as exc:
        validate_user_login("   ")
    assert exc.value.rule == "length"


def test_user_login_strips_but_keeps_case() -> None:
    assert validate_user_login("  Octo-Cat  ") == "Octo-Cat"


@pytest.mark.parametrize(
    ("value", "rule"),
    [
        ("-abc", "boundary-hyphen"),
        ("abc-", "boundary-hyphen"),
        ("a_b", "charset"),
        ("a.b", "charset"),
    ],
)
def test_user_login_rejections(value: str, rule: str) -> None:
    with pytest.raises(InvalidFormat) as exc:
        validate_user_login(value)
    assert exc.value.rule == rule
    assert exc.value.kind == "user login"


def test_team_slug_is_lowercase_only() -> None:
    assert validate_team_slug("platform-team") == "platform-team"
    assert validate_team_slug("a" * 100) == "a" * 100

    with pytest.raises(InvalidFormat) as exc:
        validate_team_slug("Team")
    assert exc.value.rule == "charset"

    with pytest.raises(InvalidFormat) as exc:
        validate_team_slug("a" * 101)
    assert exc.value.rule == "length"

    with pytest.raises(InvalidFormat) as exc:
        validate_team_slug("abc-")
    assert exc.value.rule == "boundary-hyphen"


def test_repo_name_allows_underscore_and_trailing_hyphen() -> None:
    assert validate_repo_name("_private_repo") == "_private_repo"
    assert validate_repo_name("repo-") == "repo-"

    with pytest.raises(InvalidFormat) as exc:
        validate_repo_name("-repo")
    assert exc.value.rule == "boundary-hyphen"

    with pytest.raises(InvalidFormat) as exc:
        validate_repo_name("my repo")
    assert exc.value.rule == "charset"


def test_invalid_format_is_a_validation_failure() -> None:
    with pytest.raises(ValidationFailed):
        validate_user_login("")
    with pytest.raises(ValueError):
        validate_team_slug("")


def test_team_user_pair() -> None:
    assert parse_team_user_pair("good-team/user-ok") == ("good-team", "user-ok")
    assert parse_team_user_pair("  good-team/user-ok ") == ("good-team", "user-ok")


@pytest.mark.parametrize(
    ("value", "rule"),
    [
        ("no-slash", "separator"),
        ("team/slug/users", "separator"),
        ("-team/user", "boundary-hyphen"),
        ("team/-user", "boundary-hyphen"),
        ("Team/user", "charset"),
        ("/user", "length"),
        ("good-team /  user-ok", "charset"),
        ("good-team/\tuser-ok", "charset"),
    ],
)
def test_team_user_pair_rejections(value: str, rule: str) -> None:
    with pytest.raises(InvalidFormat) as exc:
        parse_team_user_pair(value)
    assert exc.value.rule == rule
    assert exc.value.kind == "team/user pair"


def test_repo_user_pair() -> None:
    assert parse_repo_user_pair("my_repo/alice") == ("my_repo", "alice")

    with pytest.raises(InvalidFormat) as exc:
        parse_repo_user_pair("my_repo /alice")
    assert exc.value.rule == "charset"

    with pytest.raises(InvalidFormat) as exc:
        parse_repo_user_pair("repo/alice/extra")
    assert exc.value.rule == "separator"

    with pytest.raises(InvalidFormat) as exc:
        parse_repo_user_pair("repo/al_ice")
    assert exc.value.rule == "charset"


def test_team_users_path() -> None:
    assert parse_team_users_path("platform/users") == "platform"

    with pytest.raises(InvalidFormat) as exc:
        parse_team_users_path("platform/members")
    assert exc.value.rule == "suffix"

    with pytest.raises(InvalidFormat) as exc:
        parse_team_users_path("platform/Users")
    assert exc.value.rule == "suffix"

    with pytest.raises(InvalidFormat) as exc:
        parse_team_users_path("platform")
    assert exc.value.rule == "separator"
