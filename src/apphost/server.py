"""HTTP server handle.

Wraps a Starlette application served by uvicorn and exposes the pieces the
application core and its extensions work with:

- ``pre`` middleware chain: runs first, before anything else sees the request
- ``use`` middleware chain: runs after the ``pre`` chain, around routing
- routes and content-type formatters
- ``listen``/``close`` lifecycle and the bound socket ``address``

The ASGI stack is assembled on first use. Middleware cannot be attached
after that point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Callable, Iterator
from typing import Any, NamedTuple

import uvicorn
from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import BaseRoute, Route
from starlette.types import Receive, Scope, Send

from .errors import AppError, BindError, ServerStateError
from .formatters import JSON_CONTENT_TYPE, Formatter, build_formatters

logger = logging.getLogger(__name__)

STARTUP_POLL_INTERVAL = 0.01


class ServerAddress(NamedTuple):
    """Address of the bound listening socket."""

    address: str
    family: str
    port: int


class _UvicornServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the exit hook."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class HttpServer:
    """ASGI server handle owned by the application."""

    def __init__(self, *, name: str = "apphost", formatters: dict[str, Formatter] | None = None):
        self.name = name
        self.formatters = build_formatters(formatters)
        self._routes: list[BaseRoute] = []
        self._pre: list[Middleware] = []
        self._use: list[Middleware] = []
        self._app: Starlette | None = None
        self._uvicorn: _UvicornServer | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._address: ServerAddress | None = None
        self._closed = False

    # =========================================================================
    # Pipeline
    # =========================================================================

    def pre(self, *middleware: Middleware) -> None:
        """Attach middleware that runs before every other stage."""
        self._ensure_mutable()
        self._pre.extend(middleware)

    def use(self, *middleware: Middleware) -> None:
        """Attach request-handling middleware, in call order."""
        self._ensure_mutable()
        self._use.extend(middleware)

    @property
    def middleware(self) -> list[Middleware]:
        """The full chain, outermost first."""
        return [*self._pre, *self._use]

    def route(
        self,
        path: str,
        endpoint: Callable[..., Any],
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> None:
        """Register a route."""
        route = Route(path, endpoint, methods=methods, name=name)
        if self._app is not None:
            self._app.router.routes.append(route)
        else:
            self._routes.append(route)

    def _ensure_mutable(self) -> None:
        if self._app is not None:
            raise ServerStateError("Cannot attach middleware after the server has started")

    @property
    def app(self) -> Starlette:
        """The assembled Starlette application (built on first access)."""
        if self._app is None:
            self._app = Starlette(
                routes=self._routes,
                middleware=self.middleware,
                exception_handlers={AppError: self._handle_app_error},
            )
            logger.debug(
                f"Assembled {self.name} pipeline: {len(self._pre)} pre, "
                f"{len(self._use)} use, {len(self._routes)} routes"
            )
        return self._app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)

    # =========================================================================
    # Formatting
    # =========================================================================

    def add_formatter(self, content_type: str, formatter: Formatter) -> None:
        self.formatters[content_type] = formatter

    def respond(
        self,
        request: Request | None,
        body: Any,
        *,
        status_code: int = 200,
        content_type: str = JSON_CONTENT_TYPE,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Build a response whose body is serialized by the content type's formatter.

        Raises:
            ValueError: If no formatter is registered for the content type
        """
        formatter = self.formatters.get(content_type)
        if formatter is None:
            raise ValueError(f"No formatter registered for {content_type}")

        response_headers = MutableHeaders(headers=headers or {})
        data = formatter(request, response_headers, body)

        return Response(
            content=data,
            status_code=status_code,
            headers=dict(response_headers),
            media_type=content_type,
        )

    def _handle_app_error(self, request: Request, exc: Exception) -> Response:
        status_code = getattr(exc, "status_code", 500)
        return self.respond(request, exc, status_code=status_code)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def listening(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done() and not self._closed

    def address(self) -> ServerAddress | None:
        """Address of the bound socket, or None when not listening."""
        if not self.listening:
            return None
        return self._address

    async def listen(self, port: int, host: str = "0.0.0.0") -> ServerAddress:
        """Bind the listening socket and start serving.

        Returns once uvicorn has started accepting connections.

        Raises:
            BindError: If the socket cannot be bound
            ServerStateError: If the server already listened
        """
        if self._serve_task is not None:
            raise ServerStateError("Server is already listening")

        sock = self._bind(host, port)
        sockname = sock.getsockname()
        family = "IPv6" if sock.family == socket.AF_INET6 else "IPv4"
        self._address = ServerAddress(address=sockname[0], family=family, port=sockname[1])

        config = uvicorn.Config(
            self,
            host=self._address.address,
            port=self._address.port,
            log_config=None,
            access_log=False,
        )
        self._uvicorn = _UvicornServer(config)
        self._serve_task = asyncio.create_task(self._uvicorn.serve(sockets=[sock]))

        while not self._uvicorn.started:
            if self._serve_task.done():
                sock.close()
                self._serve_task.result()
                raise ServerStateError(f"{self.name} stopped during startup")
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        logger.info(f"{self.name} listening on {self._address.address}:{self._address.port}")
        return self._address

    def _bind(self, host: str, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind {host}:{port}: {e}")
            raise BindError(host, port, e) from e
        sock.set_inheritable(True)
        return sock

    def close(self) -> None:
        """Stop accepting connections and shut the server down.

        Closing a server that is not listening is a no-op.
        """
        if self._uvicorn is None or self._closed:
            logger.debug(f"{self.name} is not listening, nothing to close")
            return

        self._closed = True
        self._uvicorn.should_exit = True
        logger.info(f"Closing {self.name}")

    async def wait_closed(self) -> None:
        """Wait until the serving task has finished."""
        if self._serve_task is not None:
            await self._serve_task
