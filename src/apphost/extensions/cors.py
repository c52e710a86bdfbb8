"""Enable CORS on the server."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..middleware.cors import cors_middleware
from .base import Extension, merge_defaults

logger = logging.getLogger(__name__)

BASE_ALLOWED_HEADERS = ("X-Api-Key", "Access-Control-Allow-Origin", "Authorization")
PREFLIGHT_MAX_AGE = 5

DEFAULTS: dict[str, Any] = {
    "origins": ["*"],
    "allowedHeaders": [],
    "exposedHeaders": [],
}


class CorsConfig(BaseModel):
    """CORS extension configuration (camelCase or snake_case keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    origins: list[str] = Field(default_factory=lambda: ["*"])
    allowed_headers: list[str] = Field(default_factory=list, alias="allowedHeaders")
    exposed_headers: list[str] = Field(default_factory=list, alias="exposedHeaders")


@dataclass
class CorsOptions:
    """The CORS policy installed on the server."""

    origins: list[str]
    allowed_headers: list[str]
    exposed_headers: list[str]
    max_age: int = PREFLIGHT_MAX_AGE


def _normalize_keys(config: Mapping[str, Any] | None) -> dict[str, Any]:
    aliases = {"allowed_headers": "allowedHeaders", "exposed_headers": "exposedHeaders"}
    return {aliases.get(key, key): value for key, value in (config or {}).items()}


def build_cors_options(config: CorsConfig) -> CorsOptions:
    """Compute allow/expose header lists for a validated config.

    The allow list is the base headers followed by the configured ones, in
    order and without de-duplication. The expose list is exactly the
    configured one.
    """
    allowed_headers = list(BASE_ALLOWED_HEADERS)
    for header in config.allowed_headers:
        allowed_headers.append(header)

    exposed_headers = []
    for header in config.exposed_headers:
        exposed_headers.append(header)

    return CorsOptions(
        origins=list(config.origins),
        allowed_headers=allowed_headers,
        exposed_headers=exposed_headers,
    )


class CorsExtension(Extension):
    """Install a CORS preflight/actual middleware pair."""

    name = "cors"

    def execute(self, config: Mapping[str, Any] | None = None) -> CorsOptions:
        settings = merge_defaults(_normalize_keys(config), DEFAULTS)
        options = build_cors_options(self.parse_config(CorsConfig, settings))

        cors = cors_middleware(
            origins=options.origins,
            allow_headers=options.allowed_headers,
            expose_headers=options.exposed_headers,
            preflight_max_age=options.max_age,
        )
        self.server.pre(cors.preflight)
        self.server.use(cors.actual)

        logger.info(f"CORS enabled for origins: {', '.join(options.origins)}")
        return options
