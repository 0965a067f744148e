"""Tests for the async Queue Ops client library."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from queue_ops.client import (
    ClientError,
    ConflictError,
    NotFoundError,
    QueueOpsClient,
    ServerError,
    ServiceUnavailableError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_client(handler: Any) -> QueueOpsClient:
    """Build a QueueOpsClient wired to an httpx.MockTransport."""
    return QueueOpsClient(base_url="http://test", transport=httpx.MockTransport(handler))


def _json_response(status_code: int = 200, json: Any = None) -> httpx.Response:
    return httpx.Response(status_code, json=json)


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


async def test_context_manager_enter_exit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _json_response(200, {"status": "healthy"})

    async with _make_client(handler) as client:
        result = await client.health()
    assert result["status"] == "healthy"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def test_queue_stats_refresh_param() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/queues/stats"
        assert request.url.params["refresh"] == "true"
        return _json_response(200, {"queues": []})

    client = _make_client(handler)
    assert await client.queue_stats(refresh=True) == {"queues": []}
    await client.close()


async def test_queue_stats_without_refresh_sends_no_params() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "refresh" not in request.url.params
        return _json_response(200, {"queues": []})

    client = _make_client(handler)
    await client.queue_stats()
    await client.close()


async def test_list_jobs_only_sends_given_filters() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/jobs"
        assert dict(request.url.params) == {"page": "2", "limit": "5", "state": "failed"}
        return _json_response(200, {"jobs": [], "total": 0})

    client = _make_client(handler)
    await client.list_jobs(state="failed", page=2, limit=5)
    await client.close()


async def test_empty_queue_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/queues/send-email/empty"
        assert json.loads(request.content) == {
            "keep_completed": True,
            "include_pending": True,
            "include_active": False,
        }
        return _json_response(200, {"affected": 2})

    client = _make_client(handler)
    result = await client.empty_queue("send-email", include_pending=True)
    assert result["affected"] == 2
    await client.close()


async def test_cleanup_omits_states_by_default() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"older_than_days": 7, "dry_run": True}
        return _json_response(200, {"deleted_count": 0})

    client = _make_client(handler)
    await client.cleanup_jobs(older_than_days=7, dry_run=True)
    await client.close()


async def test_update_worker_config_sends_patch() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        assert request.url.path == "/workers/config/process-image"
        assert json.loads(request.content) == {"concurrency": 8}
        return _json_response(200, {"worker_id": "process-image", "concurrency": 8})

    client = _make_client(handler)
    result = await client.update_worker_config("process-image", concurrency=8)
    assert result["concurrency"] == 8
    await client.close()


async def test_run_housekeeping_with_overrides() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/housekeeping"
        assert json.loads(request.content) == {
            "operation": "run",
            "config": {"dry_run": False},
        }
        return _json_response(200, {"dry_run": False})

    client = _make_client(handler)
    await client.run_housekeeping("run", {"dry_run": False})
    await client.close()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (404, NotFoundError),
        (409, ConflictError),
        (400, ClientError),
        (502, ServerError),
        (500, ServerError),
    ],
)
async def test_status_codes_map_to_errors(status_code: int, error_type: type) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _json_response(status_code, {"detail": "nope"})

    client = _make_client(handler)
    with pytest.raises(error_type) as exc_info:
        await client.get_job("job-1")
    assert exc_info.value.status_code == status_code
    assert exc_info.value.message == "nope"
    await client.close()


async def test_503_carries_circuit_and_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _json_response(
            503, {"detail": "Circuit queue is open", "circuit": "queue", "retry_after": 12.5}
        )

    client = _make_client(handler)
    with pytest.raises(ServiceUnavailableError) as exc_info:
        await client.queue_stats()
    assert exc_info.value.circuit == "queue"
    assert exc_info.value.retry_after == 12.5
    assert isinstance(exc_info.value, ServerError)
    await client.close()


async def test_non_json_error_body_uses_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    client = _make_client(handler)
    with pytest.raises(ServerError) as exc_info:
        await client.worker_status()
    assert exc_info.value.message == "upstream exploded"
    await client.close()
