"""Tests for the SSE broadcaster and the control plane event bridge."""

from __future__ import annotations

import asyncio
import json

import pytest

from queue_ops.api.routes.events import event_stream
from queue_ops.api.sse import (
    CIRCUIT_STATE_CHANGED,
    WORKER_STATE_CHANGED,
    SSEBroadcaster,
    SSEEvent,
    wire_control_plane_events,
)


class TestSSEBroadcaster:
    async def test_publish_reaches_every_subscriber(self) -> None:
        broadcaster = SSEBroadcaster()
        first = await broadcaster.subscribe_async()
        second = await broadcaster.subscribe_async()

        broadcaster.publish(SSEEvent(data="hello", event="greeting"))

        assert first.get_nowait().data == "hello"
        assert second.get_nowait().event == "greeting"

    async def test_slow_subscriber_dropped(self) -> None:
        broadcaster = SSEBroadcaster(queue_size=1)
        slow = await broadcaster.subscribe_async()

        broadcaster.publish(SSEEvent(data="1"))
        broadcaster.publish(SSEEvent(data="2"))

        assert broadcaster.subscriber_count == 0
        assert slow.get_nowait().data == "1"

    async def test_shutdown_sends_sentinel_even_to_full_queue(self) -> None:
        broadcaster = SSEBroadcaster(queue_size=1)
        queue = await broadcaster.subscribe_async()
        broadcaster.publish(SSEEvent(data="pending"))

        await broadcaster.shutdown()
        await broadcaster.shutdown()

        assert queue.get_nowait() is None
        assert broadcaster.subscriber_count == 0

    async def test_subscribe_after_shutdown_ends_immediately(self) -> None:
        broadcaster = SSEBroadcaster()
        await broadcaster.shutdown()

        queue = await broadcaster.subscribe_async()
        broadcaster.publish(SSEEvent(data="ignored"))

        assert queue.get_nowait() is None
        assert queue.empty()


class TestEventStream:
    async def test_yields_events_until_shutdown(self) -> None:
        broadcaster = SSEBroadcaster()
        stream = event_stream(broadcaster)
        first = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        broadcaster.publish(SSEEvent(data="{}", event=CIRCUIT_STATE_CHANGED))
        assert await first == {"event": CIRCUIT_STATE_CHANGED, "data": "{}"}

        broadcaster.publish(SSEEvent(data="plain"))
        assert await stream.__anext__() == {"event": "message", "data": "plain"}

        await broadcaster.shutdown()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert broadcaster.subscriber_count == 0


class TestControlPlaneWiring:
    async def test_circuit_change_published(self, fake_plane) -> None:
        broadcaster = SSEBroadcaster()
        queue = await broadcaster.subscribe_async()
        wire_control_plane_events(fake_plane, broadcaster)

        async def boom() -> None:
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await fake_plane.breakers.get("queue").execute(boom)

        event = queue.get_nowait()
        assert event.event == CIRCUIT_STATE_CHANGED
        payload = json.loads(event.data)
        assert (payload["name"], payload["new_state"]) == ("queue", "open")

    async def test_worker_change_published(self, fake_plane) -> None:
        broadcaster = SSEBroadcaster()
        queue = await broadcaster.subscribe_async()
        wire_control_plane_events(fake_plane, broadcaster)

        await fake_plane.lifecycle.observe()

        event = queue.get_nowait()
        assert event.event == WORKER_STATE_CHANGED
        assert json.loads(event.data)["new_state"] == "stopped"

    async def test_unwire_stops_forwarding(self, fake_plane) -> None:
        broadcaster = SSEBroadcaster()
        queue = await broadcaster.subscribe_async()
        unwire = wire_control_plane_events(fake_plane, broadcaster)

        unwire()
        await fake_plane.lifecycle.observe()

        assert queue.empty()
