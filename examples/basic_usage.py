#!/usr/bin/env python3
"""Programmatic sync example.

This drives the engine directly instead of through the CLI:

* load settings from the config file and `GHUB_DESK_*` variables
* refresh the team list and every team's members into the local cache
* print the teams a user belongs to, and preview removing them from one

Nothing is changed on GitHub; the removal is only previewed.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from ghub_desk.config import load_settings
from ghub_desk.github.client import GitHubClient
from ghub_desk.logging import configure_logging
from ghub_desk.mutation import MutationExecutor, plan_remove
from ghub_desk.render import render
from ghub_desk.store.cache import CacheStore
from ghub_desk.sync.reconcile import Reconciler, SyncKind


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync team memberships and inspect one user.")
    parser.add_argument("--user", required=True, help="User login to inspect")
    parser.add_argument("--config", default=None, help="Path to the YAML config file")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)

    store = CacheStore(settings.database_path)
    client = GitHubClient.from_settings(settings)
    try:
        reconciler = Reconciler(client, store, interval=settings.interval)
        reconciler.sync(SyncKind.TEAMS)
        result = reconciler.sync(SyncKind.ALL_TEAMS_USERS)
        print(result.summary())

        teams = store.user_teams(args.user)
        print(render(teams, columns=("team_slug", "team_name", "role")))
    finally:
        client.close()
        store.close()

    if teams:
        intent = plan_remove(team_user=f"{teams[0]['team_slug']}/{args.user}")
        print(MutationExecutor(settings.organization).run(intent).message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
