"""Tests for CORS middleware configuration."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from queue_ops.api.middleware.cors import configure_cors
from queue_ops.config import DEFAULT_CORS_ORIGINS


def _get_cors_middleware(app: FastAPI) -> Any:
    for middleware in app.user_middleware:
        if middleware.cls is CORSMiddleware:
            return middleware
    return None


class TestConfigureCors:
    def test_default_origins_with_credentials(self) -> None:
        """GIVEN the default localhost origins
        WHEN configure_cors is called
        THEN CORSMiddleware allows them with credentials.
        """
        app = FastAPI()
        configure_cors(app, DEFAULT_CORS_ORIGINS)

        cors = _get_cors_middleware(app)
        assert cors is not None
        assert cors.kwargs["allow_origins"] == list(DEFAULT_CORS_ORIGINS)
        assert cors.kwargs["allow_credentials"] is True

    def test_wildcard_disables_credentials(self) -> None:
        app = FastAPI()
        configure_cors(app, ("*",))

        cors = _get_cors_middleware(app)
        assert cors.kwargs["allow_origins"] == ["*"]
        assert cors.kwargs["allow_credentials"] is False

    def test_patch_method_allowed(self) -> None:
        app = FastAPI()
        configure_cors(app, ["https://ops.example.com"])

        assert "PATCH" in _get_cors_middleware(app).kwargs["allow_methods"]
