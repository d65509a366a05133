"""Paginated fetching and cache reconciliation."""
