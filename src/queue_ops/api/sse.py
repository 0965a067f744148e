"""Server-Sent Events (SSE) broadcaster with graceful shutdown.

Circuit breaker and worker lifecycle listeners are synchronous callbacks,
so publishing never awaits: events are put on each subscriber queue
without blocking and slow consumers are dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..circuit_breaker import CircuitStateChange
from ..control_plane import ControlPlane
from ..workers import WorkerStateChange

logger = logging.getLogger(__name__)

CIRCUIT_STATE_CHANGED = "circuit_state_changed"
WORKER_STATE_CHANGED = "worker_state_changed"

# Per-subscriber buffer; a subscriber that falls this far behind is dropped
DEFAULT_QUEUE_SIZE = 100


@dataclass
class SSEEvent:
    """Represents a Server-Sent Event."""

    data: str
    event: str | None = None
    id: str | None = None


class SSEBroadcaster:
    """Fan-out of SSE events to subscriber queues."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._subscribers: set[asyncio.Queue[SSEEvent | None]] = set()
        self._lock = asyncio.Lock()
        self._shutdown = False
        self._queue_size = queue_size

    @property
    def subscriber_count(self) -> int:
        """Return the number of active subscribers."""
        return len(self._subscribers)

    async def subscribe_async(self) -> asyncio.Queue[SSEEvent | None]:
        """Subscribe a new client and return their queue.

        If the broadcaster is already shut down, the queue holds only the
        end-of-stream sentinel.
        """
        async with self._lock:
            queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue(maxsize=self._queue_size)
            if self._shutdown:
                queue.put_nowait(None)
            else:
                self._subscribers.add(queue)
            return queue

    async def unsubscribe_async(self, queue: asyncio.Queue[SSEEvent | None]) -> None:
        """Unsubscribe a client by removing their queue."""
        async with self._lock:
            self._subscribers.discard(queue)

    def publish(self, event: SSEEvent) -> None:
        """Publish an event to all subscribers without blocking.

        Subscribers whose queue is full are removed. No-op after shutdown.
        """
        if self._shutdown:
            return
        slow_consumers: list[asyncio.Queue[SSEEvent | None]] = []
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                slow_consumers.append(queue)
        for queue in slow_consumers:
            logger.warning("Dropping slow SSE subscriber")
            self._subscribers.discard(queue)

    def publish_json(self, event_type: str, payload: dict[str, Any]) -> None:
        self.publish(SSEEvent(event=event_type, data=json.dumps(payload)))

    async def shutdown(self) -> None:
        """Send the end-of-stream sentinel to every subscriber.

        Multiple calls to shutdown are idempotent.
        """
        async with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            for queue in list(self._subscribers):
                try:
                    queue.put_nowait(None)
                except asyncio.QueueFull:
                    # Drain so the sentinel fits
                    while not queue.empty():
                        queue.get_nowait()
                    queue.put_nowait(None)
            self._subscribers.clear()


def wire_control_plane_events(
    plane: ControlPlane, broadcaster: SSEBroadcaster
) -> Callable[[], None]:
    """Forward circuit and worker state changes to SSE subscribers.

    Args:
        plane: Control plane whose breakers and lifecycle are observed.
        broadcaster: Destination of the events.

    Returns:
        A function that removes the listeners again.
    """

    def on_circuit_change(change: CircuitStateChange) -> None:
        broadcaster.publish_json(CIRCUIT_STATE_CHANGED, change.to_dict())

    def on_worker_change(change: WorkerStateChange) -> None:
        broadcaster.publish_json(WORKER_STATE_CHANGED, change.to_dict())

    plane.breakers.on_state_change(on_circuit_change)
    plane.lifecycle.on_state_change(on_worker_change)

    def unwire() -> None:
        plane.breakers.remove_listener(on_circuit_change)
        plane.lifecycle.remove_listener(on_worker_change)

    return unwire
