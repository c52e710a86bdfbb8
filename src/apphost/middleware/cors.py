"""CORS middleware pair.

Starlette's ``CORSMiddleware`` answers preflight requests and decorates
actual responses in one stage. The server pipeline has two chains, so the
two halves are split here: the preflight half goes on the ``pre`` chain and
short-circuits OPTIONS preflight requests, the actual half goes on the
``use`` chain and adds CORS headers to every other cross-origin response.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send


def _is_preflight(scope: Scope, headers: Headers) -> bool:
    return scope["method"] == "OPTIONS" and "access-control-request-method" in headers


class PreflightCORSMiddleware(CORSMiddleware):
    """Answers CORS preflight requests; passes everything else through.

    Starlette validates requested headers against its own sorted set, which
    includes the CORS-safelisted headers. The advertised
    ``Access-Control-Allow-Headers`` value is the configured list as given,
    in order and with duplicates kept.
    """

    def __init__(self, app: ASGIApp, ordered_allow_headers: Sequence[str] = (), **options: Any) -> None:
        super().__init__(app, **options)
        self.ordered_allow_headers = list(ordered_allow_headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if "origin" in headers and _is_preflight(scope, headers):
            response = self.preflight_response(request_headers=headers)
            if self.ordered_allow_headers and not self.allow_all_headers:
                response.headers["Access-Control-Allow-Headers"] = ", ".join(self.ordered_allow_headers)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


class ActualCORSMiddleware(CORSMiddleware):
    """Adds CORS headers to actual (non-preflight) cross-origin responses."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if "origin" not in headers or _is_preflight(scope, headers):
            await self.app(scope, receive, send)
            return

        await self.simple_response(scope, receive, send, request_headers=headers)


@dataclass
class CorsPair:
    """Preflight and actual halves of one CORS policy."""

    preflight: Middleware
    actual: Middleware


def origin_pattern(origins: Sequence[str]) -> str | None:
    """Build a regex for origins containing a wildcard, e.g. ``https://*.example.com``.

    A lone ``*`` allows every origin and is handled by Starlette directly.
    """
    patterns = [
        re.escape(origin).replace(r"\*", r"[^/]*") for origin in origins if origin != "*" and "*" in origin
    ]
    if not patterns:
        return None
    return "|".join(f"(?:{pattern})" for pattern in patterns)


def cors_middleware(
    *,
    origins: Sequence[str],
    allow_headers: Sequence[str] = (),
    expose_headers: Sequence[str] = (),
    preflight_max_age: int = 5,
    allow_methods: Sequence[str] = ("*",),
    allow_credentials: bool = False,
) -> CorsPair:
    """Create the CORS middleware pair for one policy."""
    options = {
        "allow_origins": [origin for origin in origins if origin == "*" or "*" not in origin],
        "allow_origin_regex": origin_pattern(origins),
        "allow_methods": list(allow_methods),
        "allow_headers": list(allow_headers),
        "expose_headers": list(expose_headers),
        "allow_credentials": allow_credentials,
        "max_age": preflight_max_age,
    }
    return CorsPair(
        preflight=Middleware(PreflightCORSMiddleware, ordered_allow_headers=list(allow_headers), **options),
        actual=Middleware(ActualCORSMiddleware, **options),
    )
