"""Process liveness endpoints.

Plain JSON routes for load balancers and container health checks. They
report that the process is up; they do not touch the database.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi import FastAPI


async def server_status() -> dict[str, Any]:
    """Report that the collaboration server is running."""
    return {
        "status": "ok",
        "message": "Collaboration server is running",
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def health() -> dict[str, str]:
    """Minimal liveness probe."""
    return {"status": "healthy"}


def register_health_routes(app: FastAPI) -> None:
    """Attach ``/status`` and ``/health`` to ``app``.

    ``/`` belongs to NiceGUI's own page routing, so the status document lives
    at ``/status``.
    """
    app.add_api_route("/status", server_status, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])
