"""Queue Ops REST API package.

This package provides a FastAPI-based REST API over the control plane,
exposing queue stats, job remediation, worker control, housekeeping and
circuit breaker endpoints.
"""

from .app import create_app

__all__ = ["create_app"]
