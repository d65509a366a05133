"""ghub-desk.

Keeps a local SQLite cache of a GitHub organization's members, teams,
repositories and their links, and applies membership changes with a dry-run
preview by default.
"""

__version__ = "0.1.0"
