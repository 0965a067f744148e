"""CORS middleware configuration for FastAPI."""

from collections.abc import Sequence

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware


def configure_cors(app: FastAPI, allow_origins: Sequence[str]) -> None:
    """Configure CORS middleware on the FastAPI app.

    Origins come from ``[api] cors_origins`` or the QUEUE_OPS_CORS_ORIGINS
    environment variable (see ``queue_ops.config.parse_cors_origins``):
    default localhost origins, '*' for wildcard access, or a
    comma-separated list.

    Args:
        app: The FastAPI application instance to configure
        allow_origins: Allowed origins.
    """
    origins = list(allow_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
