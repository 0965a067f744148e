"""Request dependencies for API routes.

The control plane and the SSE broadcaster are created once by the
application lifespan and stored on ``app.state``.
"""

from __future__ import annotations

from fastapi import Request

from ..control_plane import ControlPlane
from .sse import SSEBroadcaster


def get_control_plane_dep(request: Request) -> ControlPlane:
    """Get the application's ControlPlane.

    Raises:
        RuntimeError: If the lifespan has not run.
    """
    plane: ControlPlane | None = getattr(request.app.state, "control_plane", None)
    if plane is None:
        raise RuntimeError("Control plane not initialized")
    return plane


def get_broadcaster_dep(request: Request) -> SSEBroadcaster:
    """Get the application's SSEBroadcaster.

    Raises:
        RuntimeError: If the lifespan has not run.
    """
    broadcaster: SSEBroadcaster | None = getattr(request.app.state, "broadcaster", None)
    if broadcaster is None:
        raise RuntimeError("Event broadcaster not initialized")
    return broadcaster
