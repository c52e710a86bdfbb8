"""Application core.

One ``Application`` per process owns the HTTP server, the boot settings,
the extension registry, the event bus and the readiness flag. Use
``get_application()`` to obtain it; the first call constructs it, later
calls return the same instance and ignore their arguments.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from .bus import EventBus, EventCallback
from .config import ENV_DEV, ENV_PROD, ENV_TEST, ApplicationOptions, Settings
from .exit_hook import exit_hook
from .extensions import CorsExtension, CustomFormattersExtension, Extension, HealthStatusExtension
from .server import HttpServer
from .shutdown import graceful_shutdown

logger = logging.getLogger(__name__)

EXTENSION_PREFIX = "extension-"
WILDCARD_ADDRESSES = ("::", "0.0.0.0")
HTTPS_PORT = 443


class Application:
    """Application wrapper around the HTTP server."""

    def __init__(self, options: ApplicationOptions | Mapping[str, Any] | None = None) -> None:
        if not isinstance(options, ApplicationOptions):
            options = ApplicationOptions.model_validate(dict(options or {}))

        self.bus = EventBus()
        self.server = HttpServer(name=options.name, formatters=options.formatters)
        self.extensions: dict[str, Any] = {}
        self.settings: Settings | None = None
        self.ready = False
        self._owns_exit_signals = False

    # =========================================================================
    # Events
    # =========================================================================

    def emit(self, event_name: str, payload: Any = None) -> None:
        """Publish an event synchronously to all subscribers."""
        self.bus.emit(event_name, payload)

    def on(self, event_name: str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to an event. Returns an unsubscribe function."""
        return self.bus.on(event_name, callback)

    def listener_count(self, event_name: str) -> int:
        return self.bus.listener_count(event_name)

    # =========================================================================
    # Accessors
    # =========================================================================

    def get(self, name: str) -> Any:
        """Get a derived value, or whether an extension has been activated.

        Supported names: ``extension-<name>``, ``is-dev-mode``,
        ``is-prod-mode``, ``is-test-mode``, ``family``, ``host``, ``port``
        and ``url``. Anything else returns None, as do address-derived
        names while the server is not listening.
        """
        if name.startswith(EXTENSION_PREFIX):
            return self.extensions.get(name[len(EXTENSION_PREFIX) :])

        if name == "is-dev-mode":
            return self._env() == ENV_DEV
        if name == "is-prod-mode":
            return self._env() == ENV_PROD
        if name == "is-test-mode":
            return self._env() == ENV_TEST

        address = self.server.address()
        if name not in ("family", "host", "port", "url") or address is None:
            return None

        if name == "family":
            return address.family
        if name == "port":
            return address.port

        host = "localhost" if address.address in WILDCARD_ADDRESSES else address.address
        if name == "host":
            return host

        scheme = "https" if address.port == HTTPS_PORT else "http"
        return f"{scheme}://{host}:{address.port}"

    def _env(self) -> str | None:
        settings = self.get_settings()
        return settings.env if settings is not None else None

    def get_server(self) -> HttpServer:
        return self.server

    def get_settings(self) -> Settings | None:
        return self.settings

    def set_settings(self, settings: Settings | Mapping[str, Any]) -> None:
        """Replace the boot settings."""
        if not isinstance(settings, Settings):
            settings = Settings.model_validate(dict(settings))
        self.settings = settings

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def listen(self, callback: Callable[[HttpServer], Any] | None = None) -> None:
        """Start the web server on the configured host and port.

        The process singleton also routes SIGINT/SIGTERM to the exit hook
        so shutdown listeners run before the server goes away.

        Raises:
            BindError: If the port cannot be bound
        """
        settings = self.settings or Settings()
        await self.server.listen(settings.port, host=settings.host)
        if _app is self:
            self._owns_exit_signals = exit_hook.attach_signals()
        self.ready = True
        if callback is not None:
            callback(self.server)

    def is_ready(self) -> bool:
        return self.ready

    def set_ready(self) -> None:
        self.ready = True

    def close(self) -> None:
        """Shut the web server down."""
        self.server.close()

    async def wait_closed(self) -> None:
        try:
            await self.server.wait_closed()
        finally:
            if self._owns_exit_signals:
                exit_hook.detach_signals()
                self._owns_exit_signals = False

    # =========================================================================
    # Extensions
    # =========================================================================

    def use_extension(
        self,
        name: str,
        extension_cls: type[Extension],
        config: Mapping[str, Any] | None = None,
    ) -> Any:
        """Activate an extension and record its result under ``name``."""
        extension = extension_cls(self)
        value = extension.execute(config)
        self.extensions[name] = True if value is None else value
        logger.info(f"Activated extension: {name}")
        return value

    def enable_cors(self, config: Mapping[str, Any] | None = None) -> Any:
        """Enable CORS (origins, allowedHeaders, exposedHeaders)."""
        return self.use_extension(CorsExtension.name, CorsExtension, config)

    def add_health_status(self, config: Mapping[str, Any] | None = None) -> Any:
        """Add health status and readiness endpoints (default: /health, /ready)."""
        return self.use_extension(HealthStatusExtension.name, HealthStatusExtension, config)

    def add_custom_formatters(self, config: Mapping[str, Any] | None = None) -> Any:
        """Add formatters for other content types."""
        return self.use_extension(CustomFormattersExtension.name, CustomFormattersExtension, config)


# Process-wide singleton
_app: Application | None = None
_app_lock = threading.Lock()


def get_application(options: ApplicationOptions | Mapping[str, Any] | None = None) -> Application:
    """Get or create the application singleton.

    The first call constructs the application from ``options`` and installs
    the graceful shutdown handler on the process exit hook. Later calls
    return the same instance.
    """
    global _app
    with _app_lock:
        if _app is None:
            _app = Application(options)
            app = _app
            exit_hook.install(lambda done: graceful_shutdown(app, done))
        elif options:
            logger.debug("Application already created, ignoring options")
        return _app


def reset_application() -> None:
    """Drop the singleton and the exit handler (for testing)."""
    global _app
    with _app_lock:
        _app = None
        exit_hook.reset()
