"""FastAPI application factory with lifespan dependency management."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import Settings, load_settings
from ..control_plane import ControlPlane
from .middleware import configure_cors, register_error_handlers
from .routes import register_routes
from .sse import SSEBroadcaster, wire_control_plane_events

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, control_plane: ControlPlane | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build the control plane from. Loaded from the
            environment and config file when omitted.
        control_plane: Pre-built control plane. The app starts it on
            startup but leaves closing it to the caller.

    Returns:
        A configured FastAPI application with lifespan management.
    """
    if control_plane is not None:
        settings = control_plane.settings
    elif settings is None:
        settings = load_settings()
    resolved_settings = settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owns_plane = control_plane is None
        plane = control_plane or ControlPlane.from_settings(resolved_settings)
        broadcaster = SSEBroadcaster()
        await plane.start()
        unwire = wire_control_plane_events(plane, broadcaster)
        app.state.control_plane = plane
        app.state.broadcaster = broadcaster
        try:
            yield
        finally:
            unwire()
            await broadcaster.shutdown()
            app.state.control_plane = None
            app.state.broadcaster = None
            if owns_plane:
                await plane.close()

    app = FastAPI(
        title="Queue Ops",
        version="1.0.0",
        docs_url="/docs",
        lifespan=lifespan,
    )

    configure_cors(app, resolved_settings.api.cors_origins)
    register_error_handlers(app)
    register_routes(app)

    return app
