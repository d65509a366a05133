"""GitHub REST client and payload models."""
