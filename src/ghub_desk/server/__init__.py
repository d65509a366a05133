"""FastAPI server adapter for ghub-desk.

Design intent:
- Keep sync, cache and mutation logic in `ghub_desk.*`
- Keep server-specific concerns (routing, tool permissions, status codes) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from ghub_desk.server.app import create_app
