"""Health status and readiness probe endpoints."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request
from starlette.responses import Response

from .base import Extension, merge_defaults

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "path": "/health",
    "readyPath": "/ready",
}


class HealthConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    path: str = "/health"
    ready_path: str = Field(default="/ready", alias="readyPath")


class HealthStatusExtension(Extension):
    """Register a health check and a readiness probe.

    The readiness probe answers 503 until the application is ready.
    """

    name = "health"

    def execute(self, config: Mapping[str, Any] | None = None) -> dict[str, str]:
        raw = dict(config or {})
        if "ready_path" in raw:
            raw["readyPath"] = raw.pop("ready_path")
        settings = self.parse_config(HealthConfig, merge_defaults(raw, DEFAULTS))

        app = self.app
        server = self.server

        async def health_check(request: Request) -> Response:
            """Health check endpoint."""
            return server.respond(request, {"status": "ok"})

        async def readiness_probe(request: Request) -> Response:
            """Readiness probe endpoint."""
            ready = app.is_ready()
            return server.respond(request, {"ready": ready}, status_code=200 if ready else 503)

        server.route(settings.path, health_check, methods=["GET"], name="health")
        server.route(settings.ready_path, readiness_probe, methods=["GET"], name="ready")

        logger.info(f"Health endpoints registered at {settings.path} and {settings.ready_path}")
        return {"path": settings.path, "ready_path": settings.ready_path}
