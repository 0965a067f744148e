"""Async HTTP client for the Queue Ops REST API."""

from __future__ import annotations

from typing import Any

import httpx

from .errors import (
    ClientError,
    ConflictError,
    NotFoundError,
    ServerError,
    ServiceUnavailableError,
)


class QueueOpsClient:
    """Async client wrapping the Queue Ops REST API.

    Usage::

        async with QueueOpsClient() as client:
            stats = await client.queue_stats()
            await client.control_workers("restart")

    Args:
        base_url: Base URL of the control plane API server.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, e.g. ``httpx.ASGITransport``
            to talk to an in-process app.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8420",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> QueueOpsClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit the async context manager, closing the underlying HTTP client."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send an HTTP request and return the parsed JSON response.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: URL path relative to ``base_url``.
            **kwargs: Extra keyword arguments forwarded to ``httpx.AsyncClient.request``.

        Returns:
            Parsed JSON response as a dictionary.

        Raises:
            NotFoundError: If the server responds with 404.
            ConflictError: If the server responds with 409.
            ServiceUnavailableError: If the server responds with 503.
            ServerError: If the server responds with another 5xx status code.
            ClientError: For any other non-2xx status code.
        """
        response = await self._client.request(method, path, **kwargs)

        if response.status_code == 404:
            raise NotFoundError(message=self._extract_detail(response))

        if response.status_code == 409:
            raise ConflictError(message=self._extract_detail(response))

        if response.status_code == 503:
            body = self._json_body(response)
            raise ServiceUnavailableError(
                message=self._extract_detail(response),
                circuit=body.get("circuit"),
                retry_after=body.get("retry_after"),
            )

        if response.status_code >= 500:
            detail = self._extract_detail(response)
            raise ServerError(status_code=response.status_code, message=detail)

        if response.status_code >= 400:
            detail = self._extract_detail(response)
            raise ClientError(status_code=response.status_code, message=detail)

        result: dict[str, Any] = response.json()
        return result

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @classmethod
    def _extract_detail(cls, response: httpx.Response) -> str:
        """Extract a human-readable error detail from a response.

        Tries to parse the JSON body for a ``detail`` key; falls back to the
        raw response text.
        """
        body = cls._json_body(response)
        if "detail" in body:
            return str(body["detail"])
        return response.text

    # ------------------------------------------------------------------
    # Health and circuits
    # ------------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        """Get dependency health.

        An unhealthy control plane answers 503, which is raised as
        ``ServiceUnavailableError``.
        """
        return await self._request("GET", "/health")

    async def ready(self) -> dict[str, Any]:
        return await self._request("GET", "/health/ready")

    async def list_circuits(self) -> dict[str, Any]:
        """List backend circuits.

        Returns:
            Dictionary with ``circuits`` and per-state ``stats``.
        """
        return await self._request("GET", "/circuits")

    async def reset_circuit(self, name: str) -> dict[str, Any]:
        return await self._request("POST", f"/circuits/{name}/reset")

    # ------------------------------------------------------------------
    # Queues and jobs
    # ------------------------------------------------------------------

    async def queue_stats(self, refresh: bool = False) -> dict[str, Any]:
        """Get the dashboard snapshot.

        Args:
            refresh: Bypass the server-side snapshot cache.

        Returns:
            Dictionary with ``queues``, ``recent_jobs``, ``worker_status``,
            ``health`` and ``last_updated``.
        """
        params = {"refresh": "true"} if refresh else None
        return await self._request("GET", "/queues/stats", params=params)

    async def reprocess_queue(self, queue_name: str) -> dict[str, Any]:
        return await self._request("POST", f"/queues/{queue_name}/reprocess")

    async def empty_queue(
        self,
        queue_name: str,
        *,
        keep_completed: bool = True,
        include_pending: bool = False,
        include_active: bool = False,
    ) -> dict[str, Any]:
        """Remove failed jobs (and optionally other states) from a queue."""
        body = {
            "keep_completed": keep_completed,
            "include_pending": include_pending,
            "include_active": include_active,
        }
        return await self._request("POST", f"/queues/{queue_name}/empty", json=body)

    async def cleanup_jobs(
        self,
        *,
        older_than_days: int = 30,
        states: list[str] | None = None,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Purge finished jobs older than ``older_than_days``.

        Args:
            older_than_days: Retention window in days (>= 1).
            states: Job states to purge. Defaults to completed and failed.
            dry_run: Count only.
        """
        body: dict[str, Any] = {"older_than_days": older_than_days, "dry_run": dry_run}
        if states is not None:
            body["states"] = states
        return await self._request("POST", "/queues/cleanup", json=body)

    async def list_jobs(
        self,
        *,
        queue: str | None = None,
        state: str | None = None,
        job_type: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """List jobs newest first.

        Returns:
            Dictionary with ``jobs``, ``total``, ``page``, ``limit`` and
            ``total_pages``.
        """
        params: dict[str, str | int] = {"page": page, "limit": limit}
        if queue is not None:
            params["queue"] = queue
        if state is not None:
            params["state"] = state
        if job_type is not None:
            params["job_type"] = job_type
        return await self._request("GET", "/jobs", params=params)

    async def get_job(self, job_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/jobs/{job_id}")

    async def retry_job(self, job_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/jobs/{job_id}/retry")

    async def cancel_job(self, job_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/jobs/{job_id}/cancel")

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def worker_status(self) -> dict[str, Any]:
        return await self._request("GET", "/workers/status")

    async def control_workers(self, action: str) -> dict[str, Any]:
        """Send a lifecycle command.

        Args:
            action: One of ``start``, ``stop`` or ``restart``.

        Returns:
            Lifecycle result with ``state`` and ``confirmed``.
        """
        return await self._request("POST", "/workers/control", json={"action": action})

    async def worker_configs(self) -> dict[str, Any]:
        return await self._request("GET", "/workers/config")

    async def get_worker_config(self, worker_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/workers/config/{worker_id}")

    async def update_worker_config(self, worker_id: str, **changes: Any) -> dict[str, Any]:
        """Partially update a worker type's configuration.

        Args:
            worker_id: Worker type identifier.
            **changes: Any of ``enabled``, ``max_retries``, ``concurrency``.
        """
        return await self._request("PATCH", f"/workers/config/{worker_id}", json=changes)

    async def set_worker_enabled(self, worker_id: str, enabled: bool) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/workers/config/{worker_id}/enabled", json={"enabled": enabled}
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def housekeeping_config(self) -> dict[str, Any]:
        return await self._request("GET", "/housekeeping/config")

    async def analyze_housekeeping(self) -> dict[str, Any]:
        return await self._request("GET", "/housekeeping/analyze")

    async def run_housekeeping(
        self, operation: str = "run", config: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Analyze or run housekeeping with optional config overrides.

        Args:
            operation: ``analyze`` or ``run``.
            config: Overrides for the server's housekeeping defaults, e.g.
                ``{"dry_run": False, "max_files": 100}``.
        """
        body: dict[str, Any] = {"operation": operation}
        if config is not None:
            body["config"] = config
        return await self._request("POST", "/housekeeping", json=body)
