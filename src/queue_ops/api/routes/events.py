"""SSE events endpoint for streaming circuit and worker state changes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..dependencies import get_broadcaster_dep
from ..sse import SSEBroadcaster, SSEEvent

logger = logging.getLogger(__name__)

router = APIRouter()


async def event_stream(broadcaster: SSEBroadcaster) -> AsyncGenerator[dict[str, str], None]:
    """Generate SSE events from the broadcaster.

    Args:
        broadcaster: The SSEBroadcaster instance.

    Yields:
        Dict with 'event' and 'data' keys for EventSourceResponse.
    """
    queue: asyncio.Queue[SSEEvent | None] | None = None
    try:
        queue = await broadcaster.subscribe_async()
        while True:
            event = await queue.get()
            if event is None:
                # Sentinel value - stream is complete
                break
            yield {"event": event.event or "message", "data": event.data}
    except asyncio.CancelledError:
        logger.debug("SSE client disconnected")
    finally:
        if queue is not None:
            # Use shield to protect cleanup from cancellation
            await asyncio.shield(broadcaster.unsubscribe_async(queue))


@router.get("/events")
async def get_events(
    broadcaster: SSEBroadcaster = Depends(get_broadcaster_dep),
) -> EventSourceResponse:
    """Stream circuit_state_changed and worker_state_changed events."""
    return EventSourceResponse(event_stream(broadcaster), ping=15)
