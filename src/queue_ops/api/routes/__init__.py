"""Route registration for FastAPI app.

Wires all route modules (health, queues, jobs, workers, housekeeping,
circuits, events) to the FastAPI app with correct URL prefixes.
"""

from __future__ import annotations

from fastapi import FastAPI

from . import circuits, events, health, housekeeping, jobs, queues, workers


def register_routes(app: FastAPI) -> None:
    """Register all route modules to the FastAPI app.

    This function is idempotent - calling it multiple times on the same app
    will not duplicate routes.

    Args:
        app: The FastAPI application instance.
    """
    if getattr(app.state, "routes_registered", False):
        return

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(queues.router, prefix="/queues", tags=["queues"])
    app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
    app.include_router(workers.router, prefix="/workers", tags=["workers"])
    app.include_router(housekeeping.router, prefix="/housekeeping", tags=["housekeeping"])
    app.include_router(circuits.router, prefix="/circuits", tags=["circuits"])
    app.include_router(events.router, tags=["events"])

    app.state.routes_registered = True
