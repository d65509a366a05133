"""Local SQLite cache."""
