"""Integration tests for the request pipeline.

Drives the assembled Starlette stack through TestClient:
- CORS preflight and actual responses
- JSON formatter responses and AppError rendering
- Health and readiness endpoints
"""

from __future__ import annotations

import json

import pytest
from starlette.requests import Request
from starlette.testclient import TestClient

from apphost import AppError, Application, ServerStateError


def _preflight(client: TestClient, origin: str, **headers: str):
    return client.options(
        "/health",
        headers={"Origin": origin, "Access-Control-Request-Method": "GET", **headers},
    )


@pytest.fixture
def cors_app(app: Application) -> Application:
    app.enable_cors({"origins": ["https://a.com"], "exposedHeaders": ["X-Trace"]})
    app.add_health_status()
    return app


# =============================================================================
# Tests: CORS
# =============================================================================


class TestCorsPreflight:
    """Preflight requests are answered by the pre chain."""

    def test_allowed_origin(self, cors_app: Application):
        """Allowed origin is echoed with max-age 5."""
        client = TestClient(cors_app.server)

        response = _preflight(client, "https://a.com")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://a.com"
        assert response.headers["access-control-max-age"] == "5"

    def test_disallowed_origin(self, cors_app: Application):
        """Other origins are not echoed back."""
        client = TestClient(cors_app.server)

        response = _preflight(client, "https://b.com")

        assert response.status_code == 400
        assert "access-control-allow-origin" not in response.headers

    def test_allowed_request_headers(self, app: Application):
        """Base and configured headers pass the preflight header check."""
        app.enable_cors({"origins": ["https://a.com"], "allowedHeaders": ["X-Custom"]})
        client = TestClient(app.server)

        response = _preflight(
            client,
            "https://a.com",
            **{"Access-Control-Request-Headers": "X-Custom, Authorization, X-Api-Key"},
        )

        assert response.status_code == 200
        allowed = response.headers["access-control-allow-headers"].lower()
        assert "x-custom" in allowed
        assert "x-api-key" in allowed

    def test_allow_headers_value_is_configured_list(self, app: Application):
        """The advertised allow list is the base headers then the configured ones, in order."""
        app.enable_cors({"origins": ["https://a.com"], "allowedHeaders": ["X-Custom"]})
        client = TestClient(app.server)

        response = _preflight(client, "https://a.com")

        assert response.headers["access-control-allow-headers"] == (
            "X-Api-Key, Access-Control-Allow-Origin, Authorization, X-Custom"
        )

    def test_allow_headers_keep_duplicates(self, app: Application):
        """Repeated configured headers are advertised as given."""
        app.enable_cors({"origins": ["https://a.com"], "allowedHeaders": ["X-Custom", "X-Custom"]})
        client = TestClient(app.server)

        response = _preflight(client, "https://a.com", **{"Access-Control-Request-Headers": "X-Custom"})

        assert response.status_code == 200
        assert response.headers["access-control-allow-headers"] == (
            "X-Api-Key, Access-Control-Allow-Origin, Authorization, X-Custom, X-Custom"
        )

    def test_unlisted_request_header_rejected(self, cors_app: Application):
        """Headers outside the allow list fail the preflight."""
        client = TestClient(cors_app.server)

        response = _preflight(client, "https://a.com", **{"Access-Control-Request-Headers": "X-Other"})

        assert response.status_code == 400

    def test_wildcard_default(self, app: Application):
        """Default policy allows any origin."""
        app.enable_cors()
        client = TestClient(app.server)

        response = _preflight(client, "https://anything.example")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_subdomain_wildcard(self, app: Application):
        """Wildcard subdomain origins match via regex."""
        app.enable_cors({"origins": ["https://*.example.com"]})
        client = TestClient(app.server)

        assert _preflight(client, "https://api.example.com").status_code == 200
        assert _preflight(client, "https://example.org").status_code == 400


class TestCorsActual:
    """Actual requests are decorated by the use chain."""

    def test_allowed_origin_headers(self, cors_app: Application):
        """Responses carry allow-origin and expose headers."""
        client = TestClient(cors_app.server)

        response = client.get("/health", headers={"Origin": "https://a.com"})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://a.com"
        assert response.headers["access-control-expose-headers"] == "X-Trace"

    def test_disallowed_origin(self, cors_app: Application):
        """The request is served but the origin is not allowed."""
        client = TestClient(cors_app.server)

        response = client.get("/health", headers={"Origin": "https://b.com"})

        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    def test_no_origin(self, cors_app: Application):
        """Same-origin requests pass untouched."""
        client = TestClient(cors_app.server)

        response = client.get("/health")

        assert response.status_code == 200
        assert "access-control-expose-headers" not in response.headers


class TestPipelineState:
    """Middleware can only be attached before the stack is built."""

    def test_cors_after_start_rejected(self, cors_app: Application):
        """Attaching middleware after the first request fails."""
        client = TestClient(cors_app.server)
        client.get("/health")

        with pytest.raises(ServerStateError):
            cors_app.enable_cors()

        assert "cors" in cors_app.extensions

    def test_routes_after_start_allowed(self, app: Application):
        """Routes can still be added to a running server."""
        client = TestClient(app.server)
        assert client.get("/late").status_code == 404

        async def late(request: Request):
            return app.server.respond(request, "late")

        app.server.route("/late", late)

        assert client.get("/late").json() == "late"


# =============================================================================
# Tests: Formatting
# =============================================================================


class TestFormattedResponses:
    """Responses built through the server formatters."""

    def test_content_length_matches_body(self, app: Application):
        """Content-Length is the exact byte length on the wire."""

        async def unicode_body(request: Request):
            return app.server.respond(request, {"name": "Zoë ☃", "items": [1, 2]})

        app.server.route("/unicode", unicode_body)
        client = TestClient(app.server)

        response = client.get("/unicode")

        assert response.headers["content-length"] == str(len(response.content))
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"name": "Zoë ☃", "items": [1, 2]}

    def test_app_error_rendered_with_cause(self, app: Application):
        """AppError raised in a route renders its cause with its status."""

        async def failing(request: Request):
            raise AppError("Order lookup failed", status_code=404, cause={"error": "order not found"})

        app.server.route("/orders/1", failing)
        client = TestClient(app.server)

        response = client.get("/orders/1")

        assert response.status_code == 404
        assert json.loads(response.content) == {"error": "order not found"}
        assert response.headers["content-length"] == str(len(response.content))

    def test_binary_body(self, app: Application):
        """Bytes bodies arrive as base64 JSON strings."""

        async def binary(request: Request):
            return app.server.respond(request, b"\x01\x02")

        app.server.route("/bin", binary)
        client = TestClient(app.server)

        assert client.get("/bin").json() == "AQI="

    def test_custom_formatter(self, app: Application):
        """Formatters registered by extension are used for their type."""

        def csv(request, headers, body):
            data = "\n".join(",".join(row) for row in body)
            headers["Content-Length"] = str(len(data.encode("utf-8")))
            return data

        app.add_custom_formatters({"text/csv": csv})

        async def export(request: Request):
            return app.server.respond(request, [["a", "b"], ["1", "2"]], content_type="text/csv")

        app.server.route("/export", export)
        client = TestClient(app.server)

        response = client.get("/export")

        assert response.text == "a,b\n1,2"
        assert response.headers["content-type"].startswith("text/csv")

    def test_unknown_content_type(self, app: Application):
        """Responding with an unregistered type is an error."""
        with pytest.raises(ValueError, match="No formatter"):
            app.server.respond(None, "x", content_type="application/xml")


# =============================================================================
# Tests: Health
# =============================================================================


class TestHealthEndpoints:
    """Health and readiness probes."""

    def test_health(self, cors_app: Application):
        client = TestClient(cors_app.server)
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready_follows_flag(self, cors_app: Application):
        """Readiness probe answers 503 until ready."""
        client = TestClient(cors_app.server)

        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json() == {"ready": False}

        cors_app.set_ready()

        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"ready": True}
